"""Core data models shared across designgen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

NOT_FOUND = "Not Found"

# Closed set of values a rendering context may hold. Lists are stored as tuples
# so contexts stay immutable once built.
Value = Union[str, int, float, bool, Tuple[str, ...]]


def coerce_value(raw: Any) -> Value:
    """Coerce an arbitrary python value into the closed ``Value`` variant."""
    if raw is None:
        return NOT_FOUND
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (list, tuple, set, frozenset)):
        items = sorted(raw, key=str) if isinstance(raw, (set, frozenset)) else raw
        return tuple(_item_to_str(item) for item in items if item is not None)
    if isinstance(raw, Mapping):
        return tuple(f"{key}: {_item_to_str(value)}" for key, value in raw.items())
    return str(raw)


def _item_to_str(item: Any) -> str:
    if isinstance(item, Mapping):
        for key in ("name", "value", "type"):
            if isinstance(item.get(key), str):
                return item[key]
        return ", ".join(f"{key}: {value}" for key, value in item.items())
    return str(item)


def is_missing(value: Optional[Value]) -> bool:
    """Return True for values the fallback operator should replace."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip() or value == NOT_FOUND
    if isinstance(value, tuple):
        return not value
    return False


class Strategy(str, Enum):
    """Generation paths a request can be served by."""

    TEMPLATE = "template"
    AI = "ai"
    ENHANCED = "enhanced"
    LEGACY = "legacy"
    CONTEXT_BRIDGE = "context-bridge"
    AUTO = "auto"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["Strategy"]:
        """Parse a request strategy; ``None`` and blank strings mean auto."""
        if raw is None:
            return None
        cleaned = str(raw).strip().lower().replace("_", "-")
        if not cleaned:
            return None
        try:
            return cls(cleaned)
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown strategy '{raw}'. Expected one of: {choices}") from exc


class WarningKind(str, Enum):
    """Categories of non-fatal conditions attached to a result."""

    UNRESOLVED_VARIABLE = "unresolved-variable"
    REASONING_UNAVAILABLE = "reasoning-unavailable"
    SUBSYSTEM_UNAVAILABLE = "subsystem-unavailable"
    TEMPLATE_FALLBACK = "template-fallback"
    CONTEXT = "context"
    TEMPLATE_SYNTAX = "template-syntax"
    EMPTY_DOCUMENT = "empty-document"


@dataclass(frozen=True)
class GenerationWarning:
    """A non-fatal condition recorded while serving a request."""

    kind: WarningKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class GenerationRequest:
    """Inbound request for a single generated document."""

    platform: str
    document_type: str
    raw_context: Mapping[str, Any] = field(default_factory=dict)
    strategy: Optional[Strategy] = None
    instructions: Optional[str] = None

    @property
    def frame_count(self) -> int:
        """Richness signal: number of frames or components supplied."""
        frames = self.raw_context.get("enhancedFrameData") or self.raw_context.get("frameData")
        if frames is None:
            frames = self.raw_context.get("frame_data")
        count = len(frames) if isinstance(frames, (list, tuple)) else 0
        figma_context = self.raw_context.get("figmaContext") or self.raw_context.get("figma_context")
        if isinstance(figma_context, Mapping):
            components = figma_context.get("components")
            if isinstance(components, (list, tuple)):
                count = max(count, len(components))
        explicit = self.raw_context.get("frameCount", self.raw_context.get("frame_count"))
        if isinstance(explicit, int) and not isinstance(explicit, bool):
            count = max(count, explicit)
        return count

    @property
    def has_screenshot(self) -> bool:
        """Richness signal: a captured screenshot or visual artifact is present."""
        for key in ("screenshot", "screenshotUrl", "screenshot_url", "hasScreenshot", "has_screenshot"):
            if self.raw_context.get(key):
                return True
        return False


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a generation request; never mutated after construction."""

    content: str
    strategy_used: Strategy
    warnings: Tuple[GenerationWarning, ...] = ()
    timing_ms: float = 0.0
    requested_strategy: Optional[Strategy] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_response(self) -> Dict[str, Any]:
        """Return the external response shape."""
        return {
            "content": self.content,
            "strategyUsed": self.strategy_used.value,
            "warnings": [str(warning) for warning in self.warnings],
            "timingMs": round(self.timing_ms, 3),
        }


__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "GenerationWarning",
    "NOT_FOUND",
    "Strategy",
    "Value",
    "WarningKind",
    "coerce_value",
    "is_missing",
]
