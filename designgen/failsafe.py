"""Fail-safe document used by the legacy strategy when nothing else can run."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

from .models import NOT_FOUND

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .context.builder import ContextObject

_ACCEPTANCE_CRITERIA = (
    "Component matches design specifications exactly",
    "Component is responsive across all breakpoints (mobile, tablet, desktop)",
    "Component passes WCAG 2.1 AA accessibility compliance",
    "Unit tests provide adequate coverage (>80%)",
    "Code follows team standards and conventions",
    "Component is documented in Storybook",
    "Cross-browser compatibility verified",
)

_IMPLEMENTATION_NOTES = (
    "Follow established design system patterns",
    "Use semantic HTML structure",
    "Implement proper keyboard navigation",
    "Ensure screen reader compatibility",
    "Add proper focus indicators",
)


def build_legacy_document(context: "ContextObject", *, reason: str | None = None) -> str:
    """Return a deterministic document built only from the context object."""
    source = context.source
    project = context.project
    component_name = _present(source.component_name, "Component")
    tech_stack = ", ".join(project.tech_stack) or "Not specified"
    document_type = _present(project.document_type, "component")

    lines: List[str] = [
        f"# {component_name} Implementation",
        "",
        "## Description",
        f"Implement the {component_name} component according to design specifications.",
        "",
        "## Technical Requirements",
        f"- **Technology Stack**: {tech_stack}",
        f"- **Document Type**: {document_type}",
        f"- **Component Type**: {_present(source.component_type, 'UI Component')}",
        "",
        "## Acceptance Criteria",
    ]
    lines.extend(f"- [ ] {criterion}" for criterion in _ACCEPTANCE_CRITERIA)
    lines.extend(["", "## Implementation Notes"])
    lines.extend(f"- {note}" for note in _IMPLEMENTATION_NOTES)
    lines.extend(
        [
            "",
            "## Resources",
            f"- Design Reference: {_present(source.live_link, 'See design file')}",
            "- Accessibility Guide: Follow WCAG 2.1 standards",
            "",
            "---",
            f"*Generated by the legacy fallback: {reason or 'richer strategies were unavailable'}.*",
        ]
    )
    return "\n".join(lines)


def _present(value: str, default: str) -> str:
    if not value or value == NOT_FOUND:
        return default
    return value


__all__ = ["build_legacy_document"]
