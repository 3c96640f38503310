"""Configuration loading for designgen (.designgen.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .context.heuristics import HeuristicSettings

CONFIG_FILENAME = ".designgen.yml"

DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "templates" / "defaults"

DEFAULT_ALIASES: Dict[str, str] = {
    "comp": "component",
    "authoring": "wiki",
}


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """Reasoning runtime settings from .designgen.yml."""

    model: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    request_timeout: Optional[float] = None


@dataclass
class TemplateConfig:
    """Where templates live and how missing ones are resolved."""

    directory: Path = DEFAULT_TEMPLATES_DIR
    global_default: str = "default"
    platform_default: str = "default"
    max_inheritance_depth: int = 8
    aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIASES))
    cache_ttl: Optional[int] = 3600
    cache_path: Optional[Path] = None


@dataclass
class StrategyConfig:
    """Strategy selection tuning."""

    complexity_threshold: int = 5
    reasoning_timeout: float = 30.0


@dataclass
class ProjectConfig:
    """Project defaults merged beneath per-request project data."""

    name: Optional[str] = None
    tech_stack: List[str] = field(default_factory=list)
    repository_url: Optional[str] = None
    documentation_url: Optional[str] = None
    analytics_url: Optional[str] = None
    team_standards: Dict[str, str] = field(default_factory=dict)


@dataclass
class EngineConfig:
    """Represents the high-level settings defined in .designgen.yml."""

    root: Path
    templates: TemplateConfig = field(default_factory=TemplateConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    heuristics: HeuristicSettings = field(default_factory=HeuristicSettings)
    llm: Optional[LLMConfig] = None
    project: ProjectConfig = field(default_factory=ProjectConfig)


def load_config(config_path: Path) -> EngineConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return EngineConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    templates = TemplateConfig()
    template_data = _as_dict(data.get("templates"))
    if template_data:
        directory = _as_str(template_data.get("directory"))
        if directory:
            templates.directory = (root / directory).resolve()
        templates.global_default = _as_str(template_data.get("global_default")) or templates.global_default
        templates.platform_default = (
            _as_str(template_data.get("platform_default")) or templates.platform_default
        )
        depth = _as_int(template_data.get("max_inheritance_depth"))
        if depth is not None:
            if depth < 1:
                raise ConfigError("templates.max_inheritance_depth must be at least 1")
            templates.max_inheritance_depth = depth
        aliases = _as_dict(template_data.get("aliases"))
        if aliases:
            templates.aliases.update(
                {str(key).lower(): str(value).lower() for key, value in aliases.items() if value}
            )
        if "cache_ttl" in template_data:
            templates.cache_ttl = _as_int(template_data.get("cache_ttl"))
        cache_path = _as_str(template_data.get("cache_path"))
        if cache_path:
            templates.cache_path = (root / cache_path).resolve()

    strategy = StrategyConfig()
    strategy_data = _as_dict(data.get("strategy"))
    if strategy_data:
        threshold = _as_int(strategy_data.get("complexity_threshold"))
        if threshold is not None:
            strategy.complexity_threshold = threshold
        timeout = _as_float(strategy_data.get("reasoning_timeout"))
        if timeout is not None:
            if timeout <= 0:
                raise ConfigError("strategy.reasoning_timeout must be positive")
            strategy.reasoning_timeout = timeout

    heuristics = _load_heuristics(_as_dict(data.get("heuristics")))

    llm_data = _as_dict(data.get("llm"))
    llm = None
    if llm_data:
        llm = LLMConfig(
            model=_as_str(llm_data.get("model")),
            base_url=_as_str(llm_data.get("base_url")),
            api_key=_as_str(llm_data.get("api_key")),
            temperature=_as_float(llm_data.get("temperature")),
            max_tokens=_as_int(llm_data.get("max_tokens")),
            request_timeout=_as_float(llm_data.get("request_timeout")),
        )
        if not any(
            (
                llm.model,
                llm.base_url,
                llm.api_key,
                llm.temperature,
                llm.max_tokens,
                llm.request_timeout,
            )
        ):
            llm = None

    project = ProjectConfig()
    project_data = _as_dict(data.get("project"))
    if project_data:
        project.name = _as_str(project_data.get("name"))
        project.tech_stack = _as_str_list(project_data.get("tech_stack"))
        project.repository_url = _as_str(project_data.get("repository_url"))
        project.documentation_url = _as_str(project_data.get("documentation_url"))
        project.analytics_url = _as_str(project_data.get("analytics_url"))
        standards = _as_dict(project_data.get("team_standards"))
        project.team_standards = {
            str(key): str(value) for key, value in standards.items() if value is not None
        }

    return EngineConfig(
        root=root,
        templates=templates,
        strategy=strategy,
        heuristics=heuristics,
        llm=llm,
        project=project,
    )


def _load_heuristics(data: Dict[str, Any]) -> HeuristicSettings:
    settings = HeuristicSettings()
    if not data:
        return settings

    for name in ("component_thresholds", "property_thresholds", "variant_thresholds"):
        pair = _as_int_pair(data.get(name))
        if pair is not None:
            setattr(settings, name, pair)

    for name in (
        "medium_score",
        "complex_score",
        "variant_risk_threshold",
        "tech_stack_risk_threshold",
        "similar_component_limit",
        "story_point_ceiling",
    ):
        value = _as_int(data.get(name))
        if value is not None:
            setattr(settings, name, value)

    for name in (
        "complex_tech_multiplier",
        "confidence_base",
        "confidence_without_design_data",
        "confidence_ceiling",
        "confidence_floor",
        "missing_field_penalty",
    ):
        value = _as_float(data.get(name))
        if value is not None:
            setattr(settings, name, value)

    base_hours = _as_dict(data.get("base_hours"))
    if base_hours:
        merged = dict(settings.base_hours)
        for label, hours in base_hours.items():
            parsed = _as_float(hours)
            if parsed is not None:
                merged[str(label)] = parsed
        settings.base_hours = merged

    bonuses = _as_dict(data.get("confidence_bonuses"))
    if bonuses:
        merged_bonuses = dict(settings.confidence_bonuses)
        for signal, bonus in bonuses.items():
            parsed = _as_float(bonus)
            if parsed is not None:
                merged_bonuses[str(signal)] = parsed
        settings.confidence_bonuses = merged_bonuses

    keywords = _as_str_list(data.get("complex_tech_keywords"))
    if keywords:
        settings.complex_tech_keywords = [keyword.lower() for keyword in keywords]

    bands = data.get("story_point_bands")
    if isinstance(bands, list):
        parsed_bands = []
        for band in bands:
            pair = _as_number_pair(band)
            if pair is not None:
                parsed_bands.append((pair[0], int(pair[1])))
        if parsed_bands:
            settings.story_point_bands = sorted(parsed_bands)

    required = _as_str_list(data.get("required_fields"))
    if required:
        settings.required_fields = required

    return settings


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.suffix not in {".yml", ".yaml"}:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_int_pair(value: Any) -> Optional[tuple[int, int]]:
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != 2:
        return None
    low, high = _as_int(value[0]), _as_int(value[1])
    if low is None or high is None or low > high:
        return None
    return (low, high)


def _as_number_pair(value: Any) -> Optional[tuple[float, float]]:
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != 2:
        return None
    first, second = _as_float(value[0]), _as_float(value[1])
    if first is None or second is None:
        return None
    return (first, second)


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DEFAULT_TEMPLATES_DIR",
    "EngineConfig",
    "LLMConfig",
    "ProjectConfig",
    "StrategyConfig",
    "TemplateConfig",
    "load_config",
]
