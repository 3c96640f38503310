from __future__ import annotations

import pytest

from designgen.context import heuristics
from designgen.context.heuristics import COMPLEX, MEDIUM, SIMPLE, DesignSignals, HeuristicSettings


@pytest.fixture
def settings() -> HeuristicSettings:
    return HeuristicSettings()


def test_complexity_score_never_decreases(settings: HeuristicSettings) -> None:
    previous = -1
    for count in range(0, 12):
        signals = DesignSignals(component_count=count, property_count=count, variant_count=count)
        score = heuristics.complexity_score(signals, settings)
        assert score >= previous
        previous = score


@pytest.mark.parametrize(
    "components, properties, variants, expected",
    [
        (0, 0, 0, SIMPLE),
        (3, 5, 0, SIMPLE),
        (3, 5, 4, MEDIUM),
        (6, 9, 7, COMPLEX),
    ],
)
def test_complexity_label(settings, components, properties, variants, expected) -> None:
    signals = DesignSignals(
        component_count=components, property_count=properties, variant_count=variants
    )
    score = heuristics.complexity_score(signals, settings)

    assert heuristics.complexity_label(score, settings) == expected


def test_hours_scale_with_complex_tech(settings: HeuristicSettings) -> None:
    assert heuristics.estimate_hours(MEDIUM, ["React"], settings) == 8
    assert heuristics.estimate_hours(MEDIUM, ["AEM 6.5"], settings) == 12


def test_story_points_follow_bands(settings: HeuristicSettings) -> None:
    assert heuristics.story_points(4, settings) == 3
    assert heuristics.story_points(8, settings) == 5
    assert heuristics.story_points(12, settings) == 8
    assert heuristics.story_points(24, settings) == 13


def test_confidence_is_bounded_and_penalised(settings: HeuristicSettings) -> None:
    rich = DesignSignals(
        has_design_data=True,
        has_specifications=True,
        component_count=1,
        property_count=1,
        variant_count=1,
    )
    assert heuristics.confidence(rich, settings) == pytest.approx(0.95)

    missing = DesignSignals(missing_fields=("component_name", "file_key", "live_link", "x", "y"))
    assert heuristics.confidence(missing, settings) == pytest.approx(settings.confidence_floor)


def test_confidence_never_increases_when_fields_go_missing(settings: HeuristicSettings) -> None:
    base = DesignSignals(has_design_data=True, component_count=2)
    fewer = DesignSignals(has_design_data=True, component_count=2, missing_fields=("file_key",))

    assert heuristics.confidence(fewer, settings) < heuristics.confidence(base, settings)


def test_risk_factors(settings: HeuristicSettings) -> None:
    signals = DesignSignals(variant_count=9, missing_fields=("file_key",))
    risks = heuristics.risk_factors(signals, ["React", "Redux", "Storybook", "AEM"], settings)

    assert risks == [
        "limited-design-context",
        "high-variant-complexity",
        "multiple-tech-stacks",
        "complex-platform",
        "missing-file-key",
    ]


def test_similar_components_skip_self_and_respect_limit(settings: HeuristicSettings) -> None:
    similar = heuristics.similar_components(
        "Button", ["Button", "Link", "Link", "Chip", "Tag", "Badge"], settings
    )
    assert similar == ["Link", "Chip", "Tag"]


def test_accessibility_requirements_by_type() -> None:
    button = heuristics.accessibility_requirements("Button")
    icon = heuristics.accessibility_requirements("ICON")

    assert "Support full keyboard interaction" in button
    assert "Provide text alternatives for non-text content" in icon
