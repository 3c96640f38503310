"""Tests for designgen.orchestrator."""

from __future__ import annotations

import threading

import pytest

from designgen.config import EngineConfig, TemplateConfig
from designgen.models import GenerationRequest, Strategy, WarningKind
from designgen.orchestrator import GenerationFacade
from designgen.templates.store import MappingTemplateLoader, TemplateCycleError, TemplateStore
from tests._fixtures.fakes import RecordingBridge, RecordingReasoner

TEMPLATE_OUTPUT = (
    "# [Jira] Primary Button\n\n"
    "## Overview\nBuilds Primary Button.\n\n"
    "## Technical Notes\nStack: React, TypeScript"
)


def _request(raw_context, strategy=None, **kwargs) -> GenerationRequest:
    return GenerationRequest(
        platform=kwargs.pop("platform", "jira"),
        document_type=kwargs.pop("document_type", "component"),
        raw_context=raw_context,
        strategy=Strategy.parse(strategy),
        **kwargs,
    )


def _kinds(result):
    return [warning.kind for warning in result.warnings]


def test_auto_without_bridge_renders_template(make_facade, raw_context) -> None:
    result = make_facade().generate(_request(raw_context))

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content == TEMPLATE_OUTPUT
    assert result.warnings == ()
    assert result.metadata["template_id"] == "platforms/jira/component"
    assert result.metadata["template_chain"] == ["platforms/jira/component", "base"]
    assert result.metadata["resolution"] == "exact"
    assert result.timing_ms >= 0


def test_rendering_is_repeatable(make_facade, raw_context) -> None:
    facade = make_facade()
    first = facade.generate(_request(raw_context, "template"))
    second = facade.generate(_request(raw_context, "template"))

    assert first.content == second.content


def test_ai_strategy_returns_reasoning_text(make_facade, raw_context) -> None:
    reasoner = RecordingReasoner("## Overview\nWritten by the model.")
    result = make_facade(reasoner).generate(
        _request(raw_context, "ai", instructions="Keep it short.")
    )

    assert result.strategy_used is Strategy.AI
    assert result.content == "## Overview\nWritten by the model."
    assert reasoner.calls[0]["instructions"] == "Keep it short."
    assert reasoner.calls[0]["context"].source.component_name == "Primary Button"


def test_enhanced_blends_reasoning_into_template(make_facade, raw_context) -> None:
    reasoner = RecordingReasoner("## Overview\nAI prose.")
    result = make_facade(reasoner).generate(_request(raw_context, "enhanced"))

    assert result.strategy_used is Strategy.ENHANCED
    assert result.content == (
        "# [Jira] Primary Button\n\n"
        "## Overview\nBuilds Primary Button.\n\nAI prose.\n\n"
        "## Technical Notes\nStack: React, TypeScript"
    )
    assert "Overview, Technical Notes" in reasoner.calls[0]["instructions"]


def test_enhanced_failure_yields_template_output_and_one_warning(make_facade, raw_context) -> None:
    template_only = make_facade().generate(_request(raw_context, "template"))
    reasoner = RecordingReasoner(error=RuntimeError("model crashed"))
    result = make_facade(reasoner).generate(_request(raw_context, "enhanced"))

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content == template_only.content
    assert _kinds(result) == [WarningKind.REASONING_UNAVAILABLE]
    assert result.metadata["downgrade_path"] == ["enhanced", "template"]


def test_enhanced_timeout_downgrades_to_template(make_facade, raw_context) -> None:
    release = threading.Event()
    reasoner = RecordingReasoner("too late", block=release)
    facade = make_facade(reasoner, reasoning_timeout=0.05)
    try:
        result = facade.generate(_request(raw_context, "enhanced"))
    finally:
        release.set()

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content == TEMPLATE_OUTPUT
    assert _kinds(result) == [WarningKind.REASONING_UNAVAILABLE]


def test_empty_reasoning_output_counts_as_failure(make_facade, raw_context) -> None:
    result = make_facade(RecordingReasoner("   ")).generate(_request(raw_context, "enhanced"))

    assert result.strategy_used is Strategy.TEMPLATE
    assert _kinds(result) == [WarningKind.REASONING_UNAVAILABLE]


def test_ai_failure_downgrades_through_enhanced(make_facade, raw_context) -> None:
    reasoner = RecordingReasoner(error=TimeoutError("slow"))
    result = make_facade(reasoner).generate(_request(raw_context, "ai"))

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content == TEMPLATE_OUTPUT
    assert _kinds(result) == [
        WarningKind.REASONING_UNAVAILABLE,
        WarningKind.REASONING_UNAVAILABLE,
    ]
    assert result.metadata["downgrade_path"] == ["ai", "enhanced", "template"]


def test_ai_without_reasoning_downgrades_before_execution(make_facade, raw_context) -> None:
    result = make_facade().generate(_request(raw_context, "ai"))

    assert result.strategy_used is Strategy.TEMPLATE
    assert len(result.warnings) == 2
    assert result.metadata["selected_strategy"] == "ai"
    assert result.metadata["downgrade_path"] == ["ai", "enhanced", "template"]


def test_unavailable_reasoner_is_not_called(make_facade, raw_context) -> None:
    reasoner = RecordingReasoner("unused", available=False)
    result = make_facade(reasoner).generate(_request(raw_context, "enhanced"))

    assert result.strategy_used is Strategy.TEMPLATE
    assert reasoner.calls == []


def test_context_bridge_enriches_raw_context(make_facade, raw_context) -> None:
    bridge = RecordingBridge({"componentName": "Bridged Button"})
    result = make_facade(context_bridge=bridge).generate(_request(raw_context))

    assert result.strategy_used is Strategy.CONTEXT_BRIDGE
    assert result.content.startswith("# [Jira] Bridged Button")
    assert bridge.calls == [raw_context]


def test_context_bridge_failure_falls_back_to_template(make_facade, raw_context) -> None:
    bridge = RecordingBridge(error=RuntimeError("bridge offline"))
    result = make_facade(context_bridge=bridge).generate(_request(raw_context))

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content == TEMPLATE_OUTPUT
    assert _kinds(result) == [WarningKind.SUBSYSTEM_UNAVAILABLE]


def test_legacy_strategy_is_deterministic(make_facade, raw_context) -> None:
    facade = make_facade()
    first = facade.generate(_request(raw_context, "legacy"))
    second = facade.generate(_request(raw_context, "legacy"))

    assert first.strategy_used is Strategy.LEGACY
    assert first.content.startswith("# Primary Button Implementation")
    assert first.content == second.content


def test_missing_template_store_uses_legacy(make_facade, raw_context) -> None:
    result = make_facade(template_store=None).generate(_request(raw_context))

    assert result.strategy_used is Strategy.LEGACY
    assert _kinds(result) == [WarningKind.SUBSYSTEM_UNAVAILABLE]
    assert "Primary Button" in result.content


def test_fallback_template_is_reported(make_facade, raw_context) -> None:
    result = make_facade().generate(
        _request(raw_context, platform="confluence", document_type="wiki")
    )

    assert result.content.startswith("# Primary Button\n")
    assert _kinds(result) == [WarningKind.TEMPLATE_FALLBACK]
    assert result.metadata["resolution"] == "global-default"


def test_context_problems_are_warnings(make_facade) -> None:
    result = make_facade().generate(_request({}, "template"))

    assert result.content.startswith("# [Jira] Component")
    assert WarningKind.CONTEXT in _kinds(result)


def test_empty_document_always_has_a_warning(make_facade, raw_context) -> None:
    store = TemplateStore(
        MappingTemplateLoader(
            {"default": {"sections": [{"name": "t", "body": "{% if nothing %}x{% endif %}"}]}}
        )
    )
    result = make_facade(template_store=store).generate(_request(raw_context, "template"))

    assert result.content == ""
    assert WarningKind.EMPTY_DOCUMENT in _kinds(result)


def test_template_cycle_propagates(make_facade, raw_context) -> None:
    store = TemplateStore(
        MappingTemplateLoader(
            {"platforms/jira/component": {"extends": "a"}, "a": {"extends": "platforms/jira/component"}}
        )
    )
    with pytest.raises(TemplateCycleError):
        make_facade(template_store=store).generate(_request(raw_context, "template"))


def test_result_response_shape(make_facade, raw_context) -> None:
    response = make_facade().generate(_request(raw_context, "ai")).to_response()

    assert set(response) == {"content", "strategyUsed", "warnings", "timingMs"}
    assert response["strategyUsed"] == "template"
    assert response["warnings"][0].startswith("reasoning-unavailable:")


def test_from_config_uses_packaged_templates(raw_context, monkeypatch, tmp_path) -> None:
    for key in ("DESIGNGEN_LLM_BASE_URL", "OPENAI_BASE_URL", "DESIGNGEN_LLM_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    facade = GenerationFacade.from_config(EngineConfig(root=tmp_path))
    try:
        assert facade.reasoning is None
        result = facade.generate(_request(raw_context))
    finally:
        facade.close()

    assert result.strategy_used is Strategy.TEMPLATE
    assert result.content.startswith("# [Component] Primary Button Implementation")
    assert "[unresolved:" not in result.content


def test_from_config_persists_template_cache_on_close(raw_context, monkeypatch, tmp_path) -> None:
    for key in ("DESIGNGEN_LLM_BASE_URL", "OPENAI_BASE_URL", "DESIGNGEN_LLM_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    cache_path = tmp_path / ".designgen" / "templates.json"
    config = EngineConfig(root=tmp_path, templates=TemplateConfig(cache_path=cache_path))

    facade = GenerationFacade.from_config(config)
    first = facade.generate(_request(raw_context))
    facade.close()
    assert cache_path.exists()

    reopened = GenerationFacade.from_config(config)
    try:
        second = reopened.generate(_request(raw_context))
        assert reopened.template_store.cache_stats()["definitions"] == 0
    finally:
        reopened.close()
    assert second.content == first.content
