"""Pure scoring heuristics for the ``calculated`` context section.

Every function here is deterministic and depends only on its arguments. The
tuning constants live on :class:`HeuristicSettings` so they can be overridden
from ``.designgen.yml`` instead of being hidden in the code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

SIMPLE = "simple"
MEDIUM = "medium"
COMPLEX = "complex"


@dataclass
class HeuristicSettings:
    """Named tuning constants for effort and confidence estimation."""

    # (lower, upper): a count above ``lower`` adds one point, above ``upper`` two.
    component_thresholds: Tuple[int, int] = (2, 5)
    property_thresholds: Tuple[int, int] = (4, 8)
    variant_thresholds: Tuple[int, int] = (3, 6)
    medium_score: int = 3
    complex_score: int = 5
    base_hours: Dict[str, float] = field(
        default_factory=lambda: {SIMPLE: 4.0, MEDIUM: 8.0, COMPLEX: 16.0}
    )
    complex_tech_keywords: List[str] = field(default_factory=lambda: ["aem"])
    complex_tech_multiplier: float = 1.5
    # (max hours, story points), checked in ascending order.
    story_point_bands: List[Tuple[float, int]] = field(
        default_factory=lambda: [(4.0, 3), (8.0, 5), (16.0, 8)]
    )
    story_point_ceiling: int = 13
    confidence_base: float = 0.7
    confidence_without_design_data: float = 0.6
    confidence_bonuses: Dict[str, float] = field(
        default_factory=lambda: {
            "specifications": 0.1,
            "components": 0.1,
            "properties": 0.05,
            "variants": 0.05,
        }
    )
    confidence_ceiling: float = 0.95
    confidence_floor: float = 0.1
    missing_field_penalty: float = 0.1
    required_fields: List[str] = field(
        default_factory=lambda: ["component_name", "file_key", "live_link"]
    )
    variant_risk_threshold: int = 8
    tech_stack_risk_threshold: int = 3
    similar_component_limit: int = 3


@dataclass(frozen=True)
class DesignSignals:
    """Counts and flags the heuristics score against."""

    node_count: int = 0
    component_count: int = 0
    property_count: int = 0
    variant_count: int = 0
    has_design_data: bool = False
    has_specifications: bool = False
    missing_fields: Tuple[str, ...] = ()


def _threshold_points(count: int, thresholds: Tuple[int, int]) -> int:
    lower, upper = thresholds
    if count > upper:
        return 2
    if count > lower:
        return 1
    return 0


def complexity_score(signals: DesignSignals, settings: HeuristicSettings) -> int:
    """Integer score that never decreases as any count grows."""
    return (
        _threshold_points(signals.component_count, settings.component_thresholds)
        + _threshold_points(signals.property_count, settings.property_thresholds)
        + _threshold_points(signals.variant_count, settings.variant_thresholds)
    )


def complexity_label(score: int, settings: HeuristicSettings) -> str:
    if score >= settings.complex_score:
        return COMPLEX
    if score >= settings.medium_score:
        return MEDIUM
    return SIMPLE


def uses_complex_tech(tech_stack: Sequence[str], settings: HeuristicSettings) -> bool:
    lowered = [tech.lower() for tech in tech_stack]
    return any(keyword in tech for tech in lowered for keyword in settings.complex_tech_keywords)


def estimate_hours(label: str, tech_stack: Sequence[str], settings: HeuristicSettings) -> int:
    hours = settings.base_hours.get(label, settings.base_hours.get(MEDIUM, 8.0))
    if uses_complex_tech(tech_stack, settings):
        hours *= settings.complex_tech_multiplier
    return int(round(hours))


def story_points(hours: float, settings: HeuristicSettings) -> int:
    for limit, points in sorted(settings.story_point_bands):
        if hours <= limit:
            return points
    return settings.story_point_ceiling


def confidence(signals: DesignSignals, settings: HeuristicSettings) -> float:
    """Confidence in [floor, ceiling]; lowered for every missing required field."""
    if not signals.has_design_data:
        value = settings.confidence_without_design_data
    else:
        value = settings.confidence_base
        bonuses = settings.confidence_bonuses
        if signals.has_specifications:
            value += bonuses.get("specifications", 0.0)
        if signals.component_count > 0:
            value += bonuses.get("components", 0.0)
        if signals.property_count > 0:
            value += bonuses.get("properties", 0.0)
        if signals.variant_count > 0:
            value += bonuses.get("variants", 0.0)
        value = min(value, settings.confidence_ceiling)
    value -= settings.missing_field_penalty * len(signals.missing_fields)
    value = max(settings.confidence_floor, min(value, settings.confidence_ceiling))
    return round(value, 2)


def risk_factors(
    signals: DesignSignals, tech_stack: Sequence[str], settings: HeuristicSettings
) -> List[str]:
    risks: List[str] = []
    if not signals.has_design_data:
        risks.append("limited-design-context")
    if signals.variant_count > settings.variant_risk_threshold:
        risks.append("high-variant-complexity")
    if len(tech_stack) > settings.tech_stack_risk_threshold:
        risks.append("multiple-tech-stacks")
    if uses_complex_tech(tech_stack, settings):
        risks.append("complex-platform")
    for name in signals.missing_fields:
        risks.append(f"missing-{name.replace('_', '-')}")
    return risks


def priority(label: str, tech_stack: Sequence[str], settings: HeuristicSettings) -> str:
    if label == COMPLEX or uses_complex_tech(tech_stack, settings):
        return "High"
    if label == MEDIUM:
        return "Medium"
    return "Low"


def similar_components(
    component_name: str, candidates: Sequence[str], settings: HeuristicSettings
) -> List[str]:
    seen: List[str] = []
    for candidate in candidates:
        if not candidate or candidate == component_name or candidate in seen:
            continue
        seen.append(candidate)
        if len(seen) >= settings.similar_component_limit:
            break
    return seen


def implementation_notes(
    label: str, signals: DesignSignals, tech_stack: Sequence[str]
) -> List[str]:
    notes: List[str] = []
    if label == COMPLEX:
        notes.append("Break the work into sub-components before implementation.")
    elif label == MEDIUM:
        notes.append(
            f"Moderate complexity with {signals.node_count} layers requiring structured implementation."
        )
    else:
        notes.append("Straightforward component; implement directly from the design specs.")
    if signals.variant_count:
        notes.append(f"Model {signals.variant_count} variants as explicit props or modifiers.")
    if tech_stack:
        notes.append(f"Follow {tech_stack[0]} conventions for structure and naming.")
    return notes


def accessibility_requirements(component_type: str) -> List[str]:
    requirements = [
        "Meet WCAG 2.1 AA colour contrast",
        "Provide visible focus indicators",
    ]
    lowered = component_type.lower()
    if any(token in lowered for token in ("button", "link", "input", "instance", "component")):
        requirements.append("Support full keyboard interaction")
    if any(token in lowered for token in ("image", "icon", "vector")):
        requirements.append("Provide text alternatives for non-text content")
    return requirements


__all__ = [
    "COMPLEX",
    "DesignSignals",
    "HeuristicSettings",
    "MEDIUM",
    "SIMPLE",
    "accessibility_requirements",
    "complexity_label",
    "complexity_score",
    "confidence",
    "estimate_hours",
    "implementation_notes",
    "priority",
    "risk_factors",
    "similar_components",
    "story_points",
    "uses_complex_tech",
]
