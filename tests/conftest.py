from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import pytest

from designgen.context.builder import ContextBuilder
from designgen.orchestrator import GenerationFacade
from designgen.strategy.selector import StrategySelector
from designgen.templates.store import MappingTemplateLoader, TemplateStore
from tests._fixtures.contexts import button_payload
from tests._fixtures.template_builder import TemplateBuilder


SIMPLE_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "base": {
        "variables": {
            "component_name": "source.component_name",
            "tech_stack": "project.tech_stack",
        },
        "sections": [
            {"name": "title", "body": "# {{ component_name || 'Component' }}"},
            {"name": "overview", "body": "## Overview\nBuilds {{ component_name }}."},
            {"name": "stack", "body": "## Technical Notes\nStack: {{ tech_stack | join(', ') }}"},
        ],
    },
    "default": {"extends": "base"},
    "platforms/jira/component": {
        "extends": "base",
        "sections": [
            {"name": "title", "body": "# [Jira] {{ component_name || 'Component' }}"},
        ],
    },
}


@pytest.fixture
def template_builder(tmp_path: Path) -> TemplateBuilder:
    """Provide a reusable template directory builder rooted at the pytest tmp_path."""
    return TemplateBuilder(tmp_path)


@pytest.fixture
def simple_store() -> TemplateStore:
    return TemplateStore(MappingTemplateLoader(SIMPLE_TEMPLATES))


@pytest.fixture
def raw_context() -> Dict[str, Any]:
    return button_payload()


@pytest.fixture
def make_facade(simple_store: TemplateStore):
    created: List[GenerationFacade] = []

    def _make(reasoning=None, **kwargs: Any) -> GenerationFacade:
        facade = GenerationFacade(
            kwargs.pop("template_store", simple_store),
            ContextBuilder(),
            StrategySelector(),
            reasoning,
            **kwargs,
        )
        created.append(facade)
        return facade

    yield _make
    for facade in created:
        facade.close()
