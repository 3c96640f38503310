"""Template loading, inheritance resolution and the compiled-template cache."""

from __future__ import annotations

import hashlib
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

import yaml

from ..logging import get_logger
from .variables import referenced_path

EXACT = "exact"
PLATFORM_DEFAULT = "platform-default"
GLOBAL_DEFAULT = "global-default"

DEFAULT_MAX_DEPTH = 8
_PLATFORMS_DIR = "platforms"
_SUFFIXES = (".yml", ".yaml")


class TemplateResolutionError(RuntimeError):
    """Raised when no usable template can be produced for a request."""


class TemplateCycleError(TemplateResolutionError):
    """Raised when a template inheritance chain loops back on itself."""


@dataclass(frozen=True)
class SectionDefinition:
    name: str
    body: str


@dataclass(frozen=True)
class TemplateDefinition:
    """A single template file before inheritance is applied."""

    template_id: str
    extends: Optional[str] = None
    variables: Mapping[str, str] = field(default_factory=dict)
    sections: Tuple[SectionDefinition, ...] = ()

    @classmethod
    def from_mapping(cls, template_id: str, data: Any) -> "TemplateDefinition":
        if not isinstance(data, Mapping):
            raise TemplateResolutionError(f"Template '{template_id}' must be a mapping")

        extends = data.get("extends")
        if extends is not None and not isinstance(extends, str):
            raise TemplateResolutionError(f"Template '{template_id}' has a non-string 'extends'")

        raw_variables = data.get("variables") or {}
        if not isinstance(raw_variables, Mapping):
            raise TemplateResolutionError(f"Template '{template_id}' variables must be a mapping")
        variables = {str(name): str(expression) for name, expression in raw_variables.items()}

        raw_sections = data.get("sections") or []
        if not isinstance(raw_sections, Sequence) or isinstance(raw_sections, str):
            raise TemplateResolutionError(f"Template '{template_id}' sections must be a list")
        sections: List[SectionDefinition] = []
        seen = set()
        for entry in raw_sections:
            if not isinstance(entry, Mapping) or not entry.get("name"):
                raise TemplateResolutionError(
                    f"Template '{template_id}' has a section without a name"
                )
            name = str(entry["name"])
            if name in seen:
                raise TemplateResolutionError(
                    f"Template '{template_id}' declares section '{name}' twice"
                )
            seen.add(name)
            body = entry.get("body")
            sections.append(SectionDefinition(name=name, body="" if body is None else str(body)))

        return cls(
            template_id=template_id,
            extends=normalise_template_id(extends) if extends else None,
            variables=MappingProxyType(variables),
            sections=tuple(sections),
        )


@dataclass(frozen=True)
class CompiledTemplate:
    """A template with its inheritance chain resolved; immutable until reload."""

    template_id: str
    platform: str
    document_type: str
    variables: Mapping[str, str]
    sections: Tuple[SectionDefinition, ...]
    chain: Tuple[str, ...]
    resolution: str = EXACT

    @property
    def is_fallback(self) -> bool:
        return self.resolution != EXACT

    def section(self, name: str) -> Optional[SectionDefinition]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "platform": self.platform,
            "document_type": self.document_type,
            "variables": dict(self.variables),
            "sections": [{"name": s.name, "body": s.body} for s in self.sections],
            "chain": list(self.chain),
            "resolution": self.resolution,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["CompiledTemplate"]:
        if not isinstance(payload, Mapping):
            return None
        try:
            return cls(
                template_id=str(payload["template_id"]),
                platform=str(payload["platform"]),
                document_type=str(payload["document_type"]),
                variables=MappingProxyType(
                    {str(k): str(v) for k, v in dict(payload["variables"]).items()}
                ),
                sections=tuple(
                    SectionDefinition(name=str(s["name"]), body=str(s["body"]))
                    for s in payload["sections"]
                ),
                chain=tuple(str(item) for item in payload["chain"]),
                resolution=str(payload["resolution"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


class TemplateLoader(Protocol):
    def load(self, template_id: str) -> Optional[Mapping[str, Any]]:
        """Return raw template data, or ``None`` if the template does not exist."""

    def template_ids(self) -> List[str]:
        """Return every template id the loader can serve."""


class TemplateAccelerator(Protocol):
    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    def persist(self) -> None:
        ...


def normalise_template_id(template_id: str) -> str:
    cleaned = str(template_id).strip().replace("\\", "/").strip("/")
    for suffix in _SUFFIXES:
        if cleaned.endswith(suffix):
            return cleaned[: -len(suffix)]
    return cleaned


def platform_template_id(platform: str, document_type: str) -> str:
    return f"{_PLATFORMS_DIR}/{platform}/{document_type}"


class DirectoryTemplateLoader:
    """Loads ``base.yml``, ``default.yml`` and ``platforms/<platform>/<type>.yml``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def load(self, template_id: str) -> Optional[Mapping[str, Any]]:
        template_id = normalise_template_id(template_id)
        for suffix in _SUFFIXES:
            path = self.root / f"{template_id}{suffix}"
            if path.is_file():
                return self._read(path, template_id)
        return None

    def template_ids(self) -> List[str]:
        if not self.root.is_dir():
            return []
        ids = set()
        for path in self.root.rglob("*"):
            if path.is_file() and path.suffix in _SUFFIXES:
                ids.add(path.relative_to(self.root).with_suffix("").as_posix())
        return sorted(ids)

    @staticmethod
    def _read(path: Path, template_id: str) -> Mapping[str, Any]:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise TemplateResolutionError(
                f"Failed to read template '{template_id}': {exc}"
            ) from exc
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise TemplateResolutionError(f"Template '{template_id}' must be a mapping")
        return data


class MappingTemplateLoader:
    """Serves templates from an in-memory ``{template_id: data}`` mapping."""

    def __init__(self, templates: Mapping[str, Mapping[str, Any]]) -> None:
        self._templates = {
            normalise_template_id(key): value for key, value in templates.items()
        }

    def load(self, template_id: str) -> Optional[Mapping[str, Any]]:
        return self._templates.get(normalise_template_id(template_id))

    def template_ids(self) -> List[str]:
        return sorted(self._templates)


class TemplateStore:
    """Resolves (platform, document type) pairs to compiled templates.

    Compiled templates are cached per key. Reads take no lock; writers serialise
    on a lock and publish a new cache dict so readers only ever observe complete
    entries.
    """

    def __init__(
        self,
        loader: TemplateLoader,
        *,
        global_default: str = "default",
        platform_default: str = "default",
        max_depth: int = DEFAULT_MAX_DEPTH,
        aliases: Mapping[str, str] | None = None,
        accelerator: TemplateAccelerator | None = None,
        accelerator_ttl: Optional[int] = None,
    ) -> None:
        self.loader = loader
        self.global_default = normalise_template_id(global_default)
        self.platform_default = platform_default.strip().lower()
        self.max_depth = max_depth
        self.aliases = {str(k).lower(): str(v).lower() for k, v in (aliases or {}).items()}
        self.accelerator = accelerator
        self.accelerator_ttl = accelerator_ttl
        self.logger = get_logger("templates.store")
        self._lock = threading.Lock()
        self._compiled: Dict[Tuple[str, str], CompiledTemplate] = {}
        self._definitions: Dict[str, Optional[TemplateDefinition]] = {}
        self._fingerprint: Optional[str] = None
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_directory(cls, root: Path, **kwargs: Any) -> "TemplateStore":
        return cls(DirectoryTemplateLoader(root), **kwargs)

    def resolve(self, platform: str, document_type: str) -> CompiledTemplate:
        key = self._key(platform, document_type)
        compiled = self._compiled.get(key)
        if compiled is not None:
            self._hits += 1
            self.logger.debug("Template cache hit for %s/%s", *key)
            return compiled

        with self._lock:
            compiled = self._compiled.get(key)
            if compiled is not None:
                self._hits += 1
                return compiled
            self._misses += 1
            compiled = self._load_accelerated(key)
            if compiled is None:
                compiled = self._resolve_uncached(*key)
                self._store_accelerated(key, compiled)
            updated = dict(self._compiled)
            updated[key] = compiled
            self._compiled = updated
        return compiled

    def compile(self, template_id: str) -> CompiledTemplate:
        """Compile a template by id, bypassing (platform, document type) lookup."""
        template_id = normalise_template_id(template_id)
        variables, sections, chain = self._compile(template_id, ())
        return CompiledTemplate(
            template_id=template_id,
            platform="",
            document_type="",
            variables=MappingProxyType(variables),
            sections=sections,
            chain=chain,
        )

    def list_templates(self) -> List[Tuple[str, str]]:
        pairs = []
        for template_id in self.loader.template_ids():
            parts = template_id.split("/")
            if len(parts) == 3 and parts[0] == _PLATFORMS_DIR:
                pairs.append((parts[1], parts[2]))
        return sorted(pairs)

    def referenced_paths(self) -> List[str]:
        """Context paths referenced by any loaded variable table."""
        paths = set()
        for template_id in self.loader.template_ids():
            definition = self._definition(template_id)
            if definition is None:
                continue
            for expression in definition.variables.values():
                path = referenced_path(expression)
                if path:
                    paths.add(path)
        return sorted(paths)

    def cache_stats(self) -> Dict[str, int]:
        return {
            "compiled": len(self._compiled),
            "definitions": len(self._definitions),
            "hits": self._hits,
            "misses": self._misses,
        }

    def invalidate(self, platform: str | None = None, document_type: str | None = None) -> None:
        """Drop compiled entries and the definitions they were built from.

        Without arguments the whole cache is replaced. Template files behind a
        dropped entry are re-read on the next resolve.
        """
        platform_key = platform.strip().lower() if platform else None
        doc_key = self._alias(document_type) if document_type else None
        with self._lock:
            kept: Dict[Tuple[str, str], CompiledTemplate] = {}
            stale: Set[str] = set()
            for key, value in self._compiled.items():
                if (platform_key is None or key[0] == platform_key) and (
                    doc_key is None or key[1] == doc_key
                ):
                    stale.update(value.chain)
                else:
                    kept[key] = value
            self._compiled = kept
            if platform_key is None and doc_key is None:
                self._definitions = {}
            else:
                self._definitions = {
                    template_id: definition
                    for template_id, definition in self._definitions.items()
                    if template_id not in stale
                }
            self._fingerprint = None

    def reload(self) -> int:
        """Forget every definition and compiled template; returns the template count."""
        with self._lock:
            self._compiled = {}
            self._definitions = {}
            self._fingerprint = None
        count = len(self.loader.template_ids())
        self.logger.info("Reloaded template store (%d templates)", count)
        return count

    def persist(self) -> None:
        """Flush the accelerator, if any, to its backing storage."""
        if self.accelerator is not None:
            self.accelerator.persist()

    # ------------------------------------------------------------------
    # Internal helpers

    def _alias(self, document_type: str) -> str:
        cleaned = document_type.strip().lower()
        return self.aliases.get(cleaned, cleaned)

    def _key(self, platform: str, document_type: str) -> Tuple[str, str]:
        return (platform.strip().lower(), self._alias(document_type))

    def _resolve_uncached(self, platform: str, document_type: str) -> CompiledTemplate:
        candidates = [
            (platform_template_id(platform, document_type), EXACT),
            (platform_template_id(platform, self.platform_default), PLATFORM_DEFAULT),
            (self.global_default, GLOBAL_DEFAULT),
        ]
        seen = set()
        for template_id, resolution in candidates:
            if template_id in seen:
                continue
            seen.add(template_id)
            if self._definition(template_id) is None:
                continue
            variables, sections, chain = self._compile(template_id, ())
            if resolution != EXACT:
                self.logger.warning(
                    "No template for %s/%s; using %s (%s)",
                    platform,
                    document_type,
                    template_id,
                    resolution,
                )
            return CompiledTemplate(
                template_id=template_id,
                platform=platform,
                document_type=document_type,
                variables=MappingProxyType(variables),
                sections=sections,
                chain=chain,
                resolution=resolution,
            )
        raise TemplateResolutionError(
            f"No template found for platform '{platform}' and document type "
            f"'{document_type}', and no default template is available"
        )

    def _compile(
        self, template_id: str, chain: Tuple[str, ...]
    ) -> Tuple[Dict[str, str], Tuple[SectionDefinition, ...], Tuple[str, ...]]:
        if template_id in chain:
            cycle = " -> ".join(chain + (template_id,))
            raise TemplateCycleError(f"Template inheritance cycle: {cycle}")
        chain = chain + (template_id,)
        if len(chain) > self.max_depth:
            raise TemplateResolutionError(
                f"Template inheritance deeper than {self.max_depth}: {' -> '.join(chain)}"
            )

        definition = self._definition(template_id)
        if definition is None:
            parent_of = f" (parent of '{chain[-2]}')" if len(chain) > 1 else ""
            raise TemplateResolutionError(f"Template '{template_id}'{parent_of} does not exist")

        if definition.extends is None:
            return dict(definition.variables), definition.sections, chain

        parent_variables, parent_sections, full_chain = self._compile(definition.extends, chain)
        variables = dict(parent_variables)
        variables.update(definition.variables)

        child_names = {section.name for section in definition.sections}
        sections = definition.sections + tuple(
            section for section in parent_sections if section.name not in child_names
        )
        return variables, sections, full_chain

    def _definition(self, template_id: str) -> Optional[TemplateDefinition]:
        if template_id in self._definitions:
            return self._definitions[template_id]
        data = self.loader.load(template_id)
        definition = None if data is None else TemplateDefinition.from_mapping(template_id, data)
        self._definitions[template_id] = definition
        return definition

    def _accelerator_key(self, key: Tuple[str, str]) -> str:
        if self._fingerprint is None:
            digest = hashlib.sha1()
            for template_id in self.loader.template_ids():
                digest.update(template_id.encode("utf-8"))
                data = self.loader.load(template_id)
                digest.update(json.dumps(data, sort_keys=True, default=str).encode("utf-8"))
            self._fingerprint = digest.hexdigest()[:16]
        return f"template:{self._fingerprint}:{key[0]}:{key[1]}"

    def _load_accelerated(self, key: Tuple[str, str]) -> Optional[CompiledTemplate]:
        if self.accelerator is None:
            return None
        compiled = CompiledTemplate.from_payload(self.accelerator.get(self._accelerator_key(key)))
        if compiled is not None:
            self.logger.debug("Template accelerator hit for %s/%s", *key)
        return compiled

    def _store_accelerated(self, key: Tuple[str, str], compiled: CompiledTemplate) -> None:
        if self.accelerator is None:
            return
        self.accelerator.set(
            self._accelerator_key(key), compiled.to_payload(), self.accelerator_ttl
        )


__all__ = [
    "CompiledTemplate",
    "DirectoryTemplateLoader",
    "EXACT",
    "GLOBAL_DEFAULT",
    "MappingTemplateLoader",
    "PLATFORM_DEFAULT",
    "SectionDefinition",
    "TemplateAccelerator",
    "TemplateCycleError",
    "TemplateDefinition",
    "TemplateLoader",
    "TemplateResolutionError",
    "TemplateStore",
    "normalise_template_id",
    "platform_template_id",
]
