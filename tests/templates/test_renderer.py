"""Tests for the template language interpreter."""

from __future__ import annotations

from types import MappingProxyType

from designgen.models import NOT_FOUND, WarningKind
from designgen.templates.renderer import TemplateRenderer, compile_template, render_text, rewrite_fallbacks
from designgen.templates.store import CompiledTemplate, SectionDefinition


def _compiled(*sections: tuple[str, str]) -> CompiledTemplate:
    return CompiledTemplate(
        template_id="test",
        platform="jira",
        document_type="component",
        variables=MappingProxyType({}),
        sections=tuple(SectionDefinition(name, body) for name, body in sections),
        chain=("test",),
    )


def test_fallback_operator_uses_literal_when_missing() -> None:
    assert render_text("{{ x || 'D' }}", {}) == "D"
    assert render_text("{{ x || 'D' }}", {"x": "V"}) == "V"


def test_fallback_operator_replaces_empty_and_not_found() -> None:
    assert render_text("{{ x || 'D' }}", {"x": ""}) == "D"
    assert render_text("{{ x || 'D' }}", {"x": NOT_FOUND}) == "D"


def test_conditional_emits_block_only_when_truthy() -> None:
    assert render_text("{% if x %}Y{% endif %}", {"x": 0}) == ""
    assert render_text("{% if x %}Y{% endif %}", {"x": 1}) == "Y"
    assert render_text("{% if x %}Y{% endif %}", {"x": NOT_FOUND}) == ""
    assert render_text("{% if x %}Y{% endif %}", {"x": []}) == ""
    assert render_text("{% if x %}Y{% endif %}", {}) == ""


def test_conditional_else_and_negation() -> None:
    assert render_text("{% if x %}A{% else %}B{% endif %}", {"x": False}) == "B"
    assert render_text("{% if not x %}missing{% endif %}", {}) == "missing"


def test_join_and_length_filters() -> None:
    assert render_text("{{ a | join(', ') }}", {"a": ["p", "q"]}) == "p, q"
    assert render_text("{{ a | length }}", {"a": ["p", "q"]}) == "2"


def test_join_on_scalar_wraps_value() -> None:
    assert render_text("{{ a | join(', ') }}", {"a": "solo"}) == "solo"
    assert render_text("{{ a | length }}", {"a": "abc"}) == "3"


def test_filters_chain_left_to_right() -> None:
    context = {"a": ["Alpha", "Beta"]}
    assert render_text("{{ a | uppercase | join('/') }}", context) == "ALPHA/BETA"
    assert render_text("{{ a | first | lowercase }}", context) == "alpha"


def test_extended_filters() -> None:
    assert render_text("{{ c | confidence }}", {"c": 0.8}) == "80%"
    assert render_text("{{ c | multiply(100) }}", {"c": 0.25}) == "25"
    assert render_text("{{ n | replace('-') | lowercase }}", {"n": "Primary Button"}) == "primary-button"
    assert render_text("{{ n | capitalize }}", {"n": "medium"}) == "Medium"
    assert render_text("{{ n | default('none') }}", {"n": NOT_FOUND}) == "none"


def test_unknown_variable_renders_diagnostic_and_warning() -> None:
    warnings: list = []
    output = render_text("Hello {{ ghost }}", {}, warnings=warnings)

    assert output == "Hello [unresolved: ghost]"
    assert len(warnings) == 1
    assert warnings[0].kind is WarningKind.UNRESOLVED_VARIABLE
    assert "ghost" in warnings[0].message


def test_syntax_error_never_raises() -> None:
    warnings: list = []
    output = render_text("{% if x %}unterminated", {"x": 1}, warnings=warnings)

    assert output.startswith("[template error:")
    assert warnings[0].kind is WarningKind.TEMPLATE_SYNTAX


def test_unknown_filter_is_a_syntax_error() -> None:
    warnings: list = []
    output = render_text("{{ x | shout }}", {"x": "a"}, warnings=warnings)

    assert output.startswith("[template error:")
    assert "shout" in output
    assert warnings[0].kind is WarningKind.TEMPLATE_SYNTAX


def test_for_loop_exposes_loop_index() -> None:
    source = "{% for item in items %}{{ loop.index }}. {{ item }}\n{% endfor %}"
    assert render_text(source, {"items": ["a", "b"]}) == "1. a\n2. b\n"


def test_standalone_block_tags_leave_no_blank_lines() -> None:
    source = "Title\n{% if items %}\n{% for item in items %}\n- {{ item }}\n{% endfor %}\n{% endif %}\nEnd"
    assert render_text(source, {"items": ["a", "b"]}) == "Title\n- a\n- b\nEnd"
    assert render_text(source, {"items": []}) == "Title\nEnd"


def test_inline_block_tags_keep_surrounding_text() -> None:
    source = "Priority: {% if high %}High{% else %}Normal{% endif %}.\nNext"
    assert render_text(source, {"high": True}) == "Priority: High.\nNext"
    assert render_text(source, {}) == "Priority: Normal.\nNext"


def test_render_joins_sections_with_blank_line_and_skips_empty() -> None:
    compiled = _compiled(
        ("title", "# {{ name }}\n"),
        ("empty", "{% if missing %}never{% endif %}"),
        ("body", "## Body\ntext\n"),
    )
    output = TemplateRenderer().render(compiled, {"name": "Button"})

    assert output == "# Button\n\n## Body\ntext"


def test_render_is_idempotent() -> None:
    compiled = _compiled(
        ("title", "# {{ name || 'Component' }}"),
        ("list", "{% for item in items %}- {{ item }}\n{% endfor %}"),
    )
    context = MappingProxyType({"name": "Card", "items": ("a", "b")})
    renderer = TemplateRenderer()

    assert renderer.render(compiled, context) == renderer.render(compiled, context)


def test_compiled_templates_are_cached() -> None:
    source = "{{ cached_value }}"
    assert compile_template(source) is compile_template(source)


def test_fallback_operator_is_rewritten_to_filter() -> None:
    assert rewrite_fallbacks("{{ a | join(', ') || 'none' }}") == "{{ a | join(', ') | fallback('none') }}"
    assert rewrite_fallbacks("{% if a %}x{% endif %}") == "{% if a %}x{% endif %}"


def test_fallback_operator_replaces_empty_list() -> None:
    assert render_text("{{ tags || 'none' }}", {"tags": []}) == "none"
    assert render_text("{{ tags | join(', ') || 'none' }}", {"tags": ()}) == "none"


def test_not_found_renders_as_text_but_tests_false() -> None:
    source = "{{ x }}{% if x %} yes{% else %} no{% endif %}"
    assert render_text(source, {"x": NOT_FOUND}) == "Not Found no"


def test_unknown_variable_inside_filter_chain_stays_unresolved() -> None:
    warnings: list = []
    assert render_text("{{ ghost | join(', ') | uppercase }}", {}, warnings=warnings) == "[unresolved: ghost]"
    assert render_text("{{ ghost | default('x') }}", {}) == "x"
    assert len(warnings) == 1


def test_numeric_filters_ignore_non_finite_values() -> None:
    assert render_text("{{ x | multiply(100) }}", {"x": "inf"}) == "inf"
    assert render_text("{{ x | confidence }}", {"x": "NaN"}) == "NaN"
    assert render_text("{{ x | confidence }}", {"x": float("inf")}) == "inf"


def test_runtime_errors_render_inline() -> None:
    warnings: list = []
    output = render_text("{{ 1 // zero }}", {"zero": 0}, warnings=warnings)

    assert output.startswith("[template error:")
    assert warnings[0].kind is WarningKind.TEMPLATE_SYNTAX
