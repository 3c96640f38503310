"""Tests for blending AI prose into template skeletons."""

from __future__ import annotations

from designgen.postproc.blender import (
    EnhancementBlender,
    labels_match,
    match_score,
    split_regions,
    split_sections,
)

SKELETON = "# Button\n\n## Overview\nBuilds Button.\n\n## Technical Notes\nStack: React"


def test_split_sections_round_trips_and_ignores_fenced_headings() -> None:
    markdown = "# Title\n\n## A\n```\n## not a heading\n```\n## B\ntext\n"
    sections = split_sections(markdown)

    assert "".join(section.raw for section in sections) == markdown
    assert [section.title for section in sections] == ["Title", "A", "B"]


def test_split_regions_recognises_label_styles() -> None:
    preamble, regions = split_regions(
        "Intro line.\n## Overview\nOne.\n**Accessibility**\nTwo.\nTesting:\nThree."
    )

    assert preamble == "Intro line."
    assert [(region.label, region.text) for region in regions] == [
        ("Overview", "One."),
        ("Accessibility", "Two."),
        ("Testing", "Three."),
    ]


def test_labels_match_whole_words_either_direction() -> None:
    assert labels_match("Technical Notes", "technical")
    assert labels_match("Notes", "Implementation notes")
    assert not labels_match("Overview", "Testing")


def test_matching_region_is_appended_under_its_heading() -> None:
    blended = EnhancementBlender().blend(SKELETON, "## Overview\nA primary action.")

    assert blended == (
        "# Button\n\n## Overview\nBuilds Button.\n\nA primary action.\n\n"
        "## Technical Notes\nStack: React"
    )


def test_unmatched_regions_go_to_insights_section() -> None:
    blended = EnhancementBlender().blend(
        SKELETON, "Some context.\n## Overview\nA primary action.\n## Testing\nCover hover."
    )

    assert blended.endswith("## AI Insights\n\nSome context.\n\n### Testing\nCover hover.")
    assert blended.count("## Technical Notes") == 1


def test_template_headings_are_authoritative() -> None:
    blended = EnhancementBlender().blend(SKELETON, "## Overview\nProse.")
    headings = [line for line in blended.splitlines() if line.startswith("#")]

    assert headings == ["# Button", "## Overview", "## Technical Notes"]


def test_document_title_never_receives_prose() -> None:
    skeleton = "# Overview\n\n## Details\nx"
    blended = EnhancementBlender().blend(skeleton, "## Overview\nprose")

    assert blended.startswith("# Overview\n\n## Details\nx")
    assert blended.endswith("## AI Insights\n\n### Overview\nprose")


def test_slot_marker_is_replaced_in_place() -> None:
    skeleton = "## Notes\n<!-- ai:slot -->\nend"
    assert EnhancementBlender().blend(skeleton, "Notes:\nextra") == "## Notes\nextra\nend"


def test_unused_slot_markers_are_removed() -> None:
    skeleton = "## Notes\n<!-- ai:slot -->\nend"
    blended = EnhancementBlender().blend(skeleton, "just prose")

    assert "ai:slot" not in blended
    assert blended == "## Notes\nend\n\n## AI Insights\n\njust prose"


def test_empty_ai_text_returns_skeleton_unchanged() -> None:
    blender = EnhancementBlender()
    assert blender.blend(SKELETON, "") == SKELETON
    assert blender.blend(SKELETON, "   \n") == SKELETON


def test_regions_are_used_once_in_section_order() -> None:
    skeleton = "## Notes\na\n\n## Implementation Notes\nb"
    blended = EnhancementBlender().blend(skeleton, "## Notes\nfirst\n## Notes\nsecond")

    assert blended == "## Notes\na\n\nfirst\n\n## Implementation Notes\nb\n\nsecond"


def test_labels_match_on_word_boundaries_only() -> None:
    assert not labels_match("Build Steps", "UI")
    assert not labels_match("Testing", "Test")
    assert match_score("Technical Notes", "technical-notes") == 2
    assert match_score("Technical Notes", "Notes") == 1


def test_exact_heading_wins_over_earlier_partial_match() -> None:
    skeleton = "## Build Steps\nsteps\n\n## UI\nscreens"
    blended = EnhancementBlender().blend(skeleton, "## UI\nUI prose here")

    assert blended == "## Build Steps\nsteps\n\n## UI\nscreens\n\nUI prose here"


def test_exact_match_is_not_taken_by_a_partial_region() -> None:
    skeleton = "## Notes\na\n\n## Implementation Notes\nb"
    blended = EnhancementBlender().blend(skeleton, "## Notes\nshort\n## Implementation Notes\nlong")

    assert blended == "## Notes\na\n\nshort\n\n## Implementation Notes\nb\n\nlong"
