"""Normalises raw design-tool payloads into immutable context objects."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..logging import get_logger, log_exception
from ..models import NOT_FOUND, GenerationWarning, Value, WarningKind, coerce_value
from . import heuristics
from .heuristics import DesignSignals, HeuristicSettings

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..config import ProjectConfig

DEFAULT_DESIGN_BASE_URL = "https://www.figma.com"

_FILE_KEY_PATTERN = re.compile(r"/(?:file|design|proto)/([^/?#]+)")
_COMPONENT_NODE_TYPES = {"COMPONENT", "COMPONENT_SET", "INSTANCE"}
_MAX_NODES = 5000
_MAX_LAYER_NAMES = 20

# Prefixes accepted in variable paths in addition to the section names.
PATH_ALIASES: Dict[str, str] = {"figma": "source"}


@dataclass(frozen=True)
class SourceContext:
    """Identifiers, dimensions, raw styles and hierarchy of the design selection."""

    file_key: str = NOT_FOUND
    file_name: str = NOT_FOUND
    component_name: str = NOT_FOUND
    component_type: str = NOT_FOUND
    node_id: str = NOT_FOUND
    live_link: str = NOT_FOUND
    screenshot_url: str = NOT_FOUND
    has_screenshot: bool = False
    width: float = 0
    height: float = 0
    fills: Tuple[str, ...] = ()
    typography: Tuple[str, ...] = ()
    spacing: Tuple[str, ...] = ()
    effects: Tuple[str, ...] = ()
    node_count: int = 0
    hierarchy_depth: int = 0
    layer_names: Tuple[str, ...] = ()
    components: Tuple[str, ...] = ()
    properties: Tuple[str, ...] = ()
    variants: Tuple[str, ...] = ()

    @property
    def dimensions(self) -> str:
        if not self.width and not self.height:
            return NOT_FOUND
        return f"{_format_number(self.width)}x{_format_number(self.height)}"


@dataclass(frozen=True)
class ProjectContext:
    """Target platform, tech stack, resource links and team standards."""

    name: str = NOT_FOUND
    tech_stack: Tuple[str, ...] = ()
    platform: str = NOT_FOUND
    document_type: str = NOT_FOUND
    repository_url: str = NOT_FOUND
    documentation_url: str = NOT_FOUND
    analytics_url: str = NOT_FOUND
    team_standards: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class CalculatedContext:
    """Derived intelligence computed by :mod:`designgen.context.heuristics`."""

    complexity: str = heuristics.MEDIUM
    complexity_score: int = 0
    hours: int = 0
    confidence: float = 0.0
    story_points: int = 0
    risk_factors: Tuple[str, ...] = ()
    priority: str = "Medium"
    similar_components: Tuple[str, ...] = ()
    implementation_notes: Tuple[str, ...] = ()
    accessibility_requirements: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ContextObject:
    """Normalised per-request data consumed by rendering and reasoning."""

    source: SourceContext
    project: ProjectContext
    calculated: CalculatedContext
    warnings: Tuple[GenerationWarning, ...] = ()

    @cached_property
    def flat(self) -> Mapping[str, Value]:
        """Flat ``section.field -> Value`` view; every known field is present."""
        flat: Dict[str, Value] = {}
        for section_name in ("source", "project", "calculated"):
            section = getattr(self, section_name)
            for item in fields(section):
                raw = getattr(section, item.name)
                if isinstance(raw, Mapping):
                    flat[f"{section_name}.{item.name}"] = coerce_value(raw)
                    for key, value in raw.items():
                        flat[f"{section_name}.{item.name}.{key}"] = _text_or_missing(value)
                    continue
                value = coerce_value(raw)
                if isinstance(value, str) and not value.strip():
                    value = NOT_FOUND
                flat[f"{section_name}.{item.name}"] = value
        flat["source.dimensions"] = self.source.dimensions
        flat["source.dimensions.width"] = self.source.width
        flat["source.dimensions.height"] = self.source.height
        return MappingProxyType(flat)

    def lookup(self, path: str) -> Optional[Value]:
        """Resolve a dotted path; ``None`` means the path is unknown."""
        cleaned = path.strip()
        head, _, rest = cleaned.partition(".")
        if head in PATH_ALIASES and rest:
            cleaned = f"{PATH_ALIASES[head]}.{rest}"
        return self.flat.get(cleaned)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Nested plain-data view used for reasoning prompts."""
        payload: Dict[str, Dict[str, Any]] = {}
        for section_name in ("source", "project", "calculated"):
            section = getattr(self, section_name)
            data: Dict[str, Any] = {}
            for item in fields(section):
                raw = getattr(section, item.name)
                if isinstance(raw, tuple):
                    data[item.name] = list(raw)
                elif isinstance(raw, Mapping):
                    data[item.name] = dict(raw)
                else:
                    data[item.name] = raw
            payload[section_name] = data
        payload["source"]["dimensions"] = self.source.dimensions
        return payload


class ContextBuilder:
    """Builds :class:`ContextObject` instances; never raises on malformed input."""

    def __init__(
        self,
        settings: HeuristicSettings | None = None,
        *,
        project_defaults: "ProjectConfig | None" = None,
        design_base_url: str = DEFAULT_DESIGN_BASE_URL,
    ) -> None:
        self.settings = settings or HeuristicSettings()
        self.project_defaults = project_defaults
        self.design_base_url = design_base_url.rstrip("/")
        self.logger = get_logger("context")

    def build(
        self,
        raw: Any,
        *,
        platform: str | None = None,
        document_type: str | None = None,
    ) -> ContextObject:
        """Return a context object for ``raw``; problems become warnings."""
        try:
            return self._build(raw, platform=platform, document_type=document_type)
        except Exception as exc:  # pragma: no cover - malformed payload guard
            log_exception(self.logger, "Context build failed", exc)
            warning = GenerationWarning(
                WarningKind.CONTEXT, f"raw context could not be normalised: {exc}"
            )
            return self._empty_context(platform, document_type, warning)

    # ------------------------------------------------------------------
    # Internal helpers

    def _build(
        self,
        raw: Any,
        *,
        platform: str | None,
        document_type: str | None,
    ) -> ContextObject:
        warnings: List[GenerationWarning] = []
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            warnings.append(
                GenerationWarning(
                    WarningKind.CONTEXT,
                    f"raw context must be a mapping, got {type(raw).__name__}",
                )
            )
            raw = {}

        frames = self._collect_frames(raw, warnings)
        design = _as_mapping(_first(raw, "figmaContext", "figma_context"))
        nodes, depth = _walk_nodes(frames)
        first_frame = frames[0] if frames else {}

        source = self._build_source(raw, design, first_frame, nodes, depth)
        project = self._build_project(raw, platform, document_type)

        missing = tuple(
            name
            for name in self.settings.required_fields
            if _text_or_missing(getattr(source, name, None)) == NOT_FOUND
        )
        for name in missing:
            warnings.append(
                GenerationWarning(WarningKind.CONTEXT, f"required field '{name}' is missing")
            )

        signals = DesignSignals(
            node_count=source.node_count,
            component_count=len(source.components),
            property_count=len(source.properties),
            variant_count=len(source.variants),
            has_design_data=bool(nodes) or bool(design),
            has_specifications=bool(design.get("specifications")),
            missing_fields=missing,
        )
        calculated = self._build_calculated(source, project, signals)
        self.logger.debug(
            "Built context for %s (%d nodes, complexity=%s, confidence=%.2f)",
            source.component_name,
            source.node_count,
            calculated.complexity,
            calculated.confidence,
        )
        return ContextObject(
            source=source,
            project=project,
            calculated=calculated,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _collect_frames(
        raw: Mapping[str, Any], warnings: List[GenerationWarning]
    ) -> List[Mapping[str, Any]]:
        candidate = _first(
            raw, "enhancedFrameData", "enhanced_frame_data", "frameData", "frame_data"
        )
        if candidate is None:
            return []
        if isinstance(candidate, Mapping):
            candidate = [candidate]
        if not isinstance(candidate, Sequence) or isinstance(candidate, (str, bytes)):
            warnings.append(
                GenerationWarning(WarningKind.CONTEXT, "frame data must be a list of nodes")
            )
            return []
        frames = [frame for frame in candidate if isinstance(frame, Mapping)]
        skipped = len(candidate) - len(frames)
        if skipped:
            warnings.append(
                GenerationWarning(
                    WarningKind.CONTEXT, f"ignored {skipped} frame entries that are not objects"
                )
            )
        return frames

    def _build_source(
        self,
        raw: Mapping[str, Any],
        design: Mapping[str, Any],
        first_frame: Mapping[str, Any],
        nodes: Sequence[Mapping[str, Any]],
        depth: int,
    ) -> SourceContext:
        file_context = _as_mapping(_first(raw, "fileContext", "file_context"))
        design_meta = _as_mapping(design.get("metadata"))
        url = _as_text(_first(raw, "figmaUrl", "figma_url", "liveLink", "live_link", "url"))

        component_name = _first_text(
            _first(raw, "componentName", "component_name"),
            design.get("name"),
            first_frame.get("name"),
        )
        component_type = _first_text(
            _first(raw, "componentType", "component_type"),
            design.get("type"),
            first_frame.get("type"),
        )
        file_key = _first_text(
            _first(raw, "fileKey", "file_key"),
            _first(file_context, "fileKey", "file_key"),
            _first(design, "fileKey", "file_key"),
            design_meta.get("id"),
            _extract_file_key(url),
        )
        file_name = _first_text(
            _first(raw, "fileName", "file_name"),
            _first(file_context, "fileName", "file_name"),
            design_meta.get("name"),
        )
        node_id = _first_text(_first(raw, "nodeId", "node_id"), first_frame.get("id"))
        live_link = url or self._build_live_link(file_key, node_id)

        screenshot = _first(raw, "screenshot", "screenshotUrl", "screenshot_url")
        screenshot_url = _screenshot_url(screenshot)

        width, height = _dimensions(_as_mapping(raw.get("dimensions")), first_frame)

        styles = _as_mapping(raw.get("styles"))
        fills = _explicit_list(styles.get("fills")) or _collect_fills(nodes, design)
        typography = _explicit_list(styles.get("typography")) or _collect_typography(nodes)
        spacing = _explicit_list(styles.get("spacing")) or _collect_spacing(nodes)
        effects = _explicit_list(styles.get("effects")) or _collect_effects(nodes)

        components = _unique(
            [_item_name(item) for item in _as_list(design.get("components"))]
            + [
                _as_text(node.get("name"))
                for node in nodes
                if str(node.get("type", "")).upper() in _COMPONENT_NODE_TYPES
            ]
        )
        properties = _unique(
            [_item_name(item) for item in _as_list(design.get("properties"))]
            + [str(key) for key in _as_mapping(first_frame.get("componentProperties"))]
        )
        variants = _unique(
            [_item_name(item) for item in _as_list(design.get("variants"))]
            + [_item_name(item) for item in _as_list(first_frame.get("variants"))]
        )

        return SourceContext(
            file_key=file_key,
            file_name=file_name,
            component_name=component_name,
            component_type=component_type,
            node_id=node_id,
            live_link=live_link or NOT_FOUND,
            screenshot_url=screenshot_url or NOT_FOUND,
            has_screenshot=bool(screenshot) or bool(raw.get("hasScreenshot") or raw.get("has_screenshot")),
            width=width,
            height=height,
            fills=tuple(fills),
            typography=tuple(typography),
            spacing=tuple(spacing),
            effects=tuple(effects),
            node_count=len(nodes),
            hierarchy_depth=depth,
            layer_names=tuple(_unique(_as_text(node.get("name")) for node in nodes)[:_MAX_LAYER_NAMES]),
            components=tuple(components),
            properties=tuple(properties),
            variants=tuple(variants),
        )

    def _build_project(
        self,
        raw: Mapping[str, Any],
        platform: str | None,
        document_type: str | None,
    ) -> ProjectContext:
        defaults = self.project_defaults
        project_raw = _as_mapping(raw.get("project"))

        tech_stack = _as_text_list(_first(raw, "techStack", "tech_stack"))
        if not tech_stack:
            tech_stack = _as_text_list(_first(project_raw, "techStack", "tech_stack"))
        if not tech_stack and defaults is not None:
            tech_stack = list(defaults.tech_stack)

        standards: Dict[str, str] = dict(defaults.team_standards) if defaults else {}
        for candidate in (
            _first(project_raw, "teamStandards", "team_standards"),
            _first(raw, "teamStandards", "team_standards"),
        ):
            for key, value in _as_mapping(candidate).items():
                if value is not None:
                    standards[str(key)] = str(value)

        def _project_value(camel: str, snake: str) -> str:
            default = getattr(defaults, snake, None) if defaults is not None else None
            return _first_text(_first(project_raw, camel, snake), default)

        return ProjectContext(
            name=_project_value("name", "name"),
            tech_stack=tuple(tech_stack),
            platform=_first_text(platform, raw.get("platform"), raw.get("format")),
            document_type=_first_text(
                document_type, _first(raw, "documentType", "document_type")
            ),
            repository_url=_project_value("repositoryUrl", "repository_url"),
            documentation_url=_project_value("documentationUrl", "documentation_url"),
            analytics_url=_project_value("analyticsUrl", "analytics_url"),
            team_standards=MappingProxyType(standards),
        )

    def _build_calculated(
        self,
        source: SourceContext,
        project: ProjectContext,
        signals: DesignSignals,
    ) -> CalculatedContext:
        settings = self.settings
        tech_stack = list(project.tech_stack)
        score = heuristics.complexity_score(signals, settings)
        label = heuristics.complexity_label(score, settings)
        hours = heuristics.estimate_hours(label, tech_stack, settings)
        return CalculatedContext(
            complexity=label,
            complexity_score=score,
            hours=hours,
            confidence=heuristics.confidence(signals, settings),
            story_points=heuristics.story_points(hours, settings),
            risk_factors=tuple(heuristics.risk_factors(signals, tech_stack, settings)),
            priority=heuristics.priority(label, tech_stack, settings),
            similar_components=tuple(
                heuristics.similar_components(source.component_name, source.components, settings)
            ),
            implementation_notes=tuple(
                heuristics.implementation_notes(label, signals, tech_stack)
            ),
            accessibility_requirements=tuple(
                heuristics.accessibility_requirements(source.component_type)
            ),
        )

    def _build_live_link(self, file_key: str, node_id: str) -> str:
        if file_key == NOT_FOUND:
            return NOT_FOUND
        link = f"{self.design_base_url}/file/{file_key}"
        if node_id != NOT_FOUND:
            link += f"?node-id={node_id.replace(':', '-')}"
        return link

    def _empty_context(
        self,
        platform: str | None,
        document_type: str | None,
        warning: GenerationWarning,
    ) -> ContextObject:
        signals = DesignSignals(missing_fields=tuple(self.settings.required_fields))
        source = SourceContext()
        project = ProjectContext(
            platform=_first_text(platform),
            document_type=_first_text(document_type),
        )
        return ContextObject(
            source=source,
            project=project,
            calculated=self._build_calculated(source, project, signals),
            warnings=(warning,),
        )


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _first_text(*candidates: Any) -> str:
    for candidate in candidates:
        text = _as_text(candidate)
        if text:
            return text
    return NOT_FOUND


def _as_text(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return "" if text == NOT_FOUND else text
    return ""


def _text_or_missing(value: Any) -> str:
    text = _as_text(value)
    return text or NOT_FOUND


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _as_text_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [text for text in (_as_text(item) for item in _as_list(value)) if text]


def _explicit_list(value: Any) -> List[str]:
    return _unique(_item_name(item) for item in _as_list(value))


def _item_name(item: Any) -> str:
    if isinstance(item, Mapping):
        return _first_text(item.get("name"), item.get("value"), item.get("type")).replace(
            NOT_FOUND, ""
        )
    return _as_text(item)


def _unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def _walk_nodes(frames: Sequence[Mapping[str, Any]]) -> Tuple[List[Mapping[str, Any]], int]:
    """Flatten nested groups depth-first; returns the nodes and the maximum depth."""
    nodes: List[Mapping[str, Any]] = []
    max_depth = 0
    stack: List[Tuple[Mapping[str, Any], int]] = [(frame, 1) for frame in reversed(frames)]
    while stack and len(nodes) < _MAX_NODES:
        node, depth = stack.pop()
        nodes.append(node)
        max_depth = max(max_depth, depth)
        children = [child for child in _as_list(node.get("children")) if isinstance(child, Mapping)]
        stack.extend((child, depth + 1) for child in reversed(children))
    return nodes, max_depth


def _dimensions(explicit: Mapping[str, Any], frame: Mapping[str, Any]) -> Tuple[float, float]:
    for candidate in (explicit, frame, _as_mapping(frame.get("absoluteBoundingBox"))):
        width, height = _as_number(candidate.get("width")), _as_number(candidate.get("height"))
        if width or height:
            return width, height
    return 0, 0


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("px"))
        except ValueError:
            return 0
    return 0


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _rgb_to_hex(color: Mapping[str, Any]) -> str:
    channels = []
    for key in ("r", "g", "b"):
        channel = _as_number(color.get(key))
        if channel <= 1:
            channel *= 255
        channels.append(max(0, min(255, int(round(channel)))))
    return "#{:02x}{:02x}{:02x}".format(*channels)


def _collect_fills(nodes: Sequence[Mapping[str, Any]], design: Mapping[str, Any]) -> List[str]:
    fills: List[str] = []
    for node in nodes:
        for fill in _as_list(node.get("fills")):
            if not isinstance(fill, Mapping):
                continue
            if str(fill.get("type", "SOLID")).upper() == "SOLID" and isinstance(
                fill.get("color"), Mapping
            ):
                fills.append(_rgb_to_hex(fill["color"]))
    specifications = _as_mapping(design.get("specifications"))
    for color in _as_list(specifications.get("colors")):
        if isinstance(color, Mapping):
            fills.append(_first_text(color.get("hex"), color.get("value"), color.get("name")))
        else:
            fills.append(_as_text(color))
    return _unique(fill for fill in fills if fill != NOT_FOUND)


def _collect_typography(nodes: Sequence[Mapping[str, Any]]) -> List[str]:
    entries: List[str] = []
    for node in nodes:
        style = _as_mapping(node.get("style"))
        family = _as_text(style.get("fontFamily"))
        size = _as_number(style.get("fontSize"))
        if family and size:
            entries.append(f"{family} {_format_number(size)}px")
        elif family:
            entries.append(family)
    return _unique(entries)


def _collect_spacing(nodes: Sequence[Mapping[str, Any]]) -> List[str]:
    values: List[str] = []
    for node in nodes:
        for key in ("itemSpacing", "paddingTop", "paddingRight", "paddingBottom", "paddingLeft"):
            amount = _as_number(node.get(key))
            if amount:
                values.append(f"{_format_number(amount)}px")
    return _unique(values)


def _collect_effects(nodes: Sequence[Mapping[str, Any]]) -> List[str]:
    effects: List[str] = []
    for node in nodes:
        for effect in _as_list(node.get("effects")):
            if isinstance(effect, Mapping) and effect.get("visible", True):
                effects.append(_as_text(effect.get("type")).lower().replace("_", "-"))
    return _unique(effects)


def _extract_file_key(url: str) -> str:
    if not url:
        return ""
    match = _FILE_KEY_PATTERN.search(url)
    return match.group(1) if match else ""


def _screenshot_url(screenshot: Any) -> str:
    if isinstance(screenshot, Mapping):
        screenshot = _first(screenshot, "url", "href")
    text = _as_text(screenshot)
    if text.startswith(("http://", "https://")):
        return text
    return ""


__all__ = [
    "CalculatedContext",
    "ContextBuilder",
    "ContextObject",
    "PATH_ALIASES",
    "ProjectContext",
    "SourceContext",
]
