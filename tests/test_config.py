"""Tests for designgen.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from designgen.config import (
    DEFAULT_TEMPLATES_DIR,
    ConfigError,
    EngineConfig,
    LLMConfig,
    load_config,
)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, EngineConfig)
    assert config.root == tmp_path.resolve()
    assert config.llm is None
    assert config.templates.directory == DEFAULT_TEMPLATES_DIR
    assert config.templates.max_inheritance_depth == 8
    assert config.templates.cache_path is None
    assert config.templates.aliases["comp"] == "component"
    assert config.strategy.complexity_threshold == 5
    assert config.strategy.reasoning_timeout == 30.0
    assert config.project.tech_stack == []
    assert config.heuristics.story_point_ceiling == 13


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".designgen.yml"
    config_file.write_text(
        """
llm:
  model: "gpt-4o-mini"
  temperature: 0.15
  max_tokens: 256
  base_url: "http://localhost:12434/engines/v1"
  api_key: "test-key"
  request_timeout: 60
templates:
  directory: "design/templates"
  global_default: "fallback"
  max_inheritance_depth: 4
  aliases:
    Ticket: Component
  cache_ttl: 120
  cache_path: ".designgen/templates.json"
strategy:
  complexity_threshold: 7
  reasoning_timeout: 12.5
project:
  name: "Storefront"
  tech_stack: [React, TypeScript]
  repository_url: "https://git.example.com/storefront"
  team_standards:
    naming: BEM
    testing: "Jest + RTL"
heuristics:
  component_thresholds: [1, 3]
  base_hours:
    complex: 24
  complex_tech_keywords: [AEM, Sitecore]
  story_point_bands:
    - [6, 3]
    - [2, 1]
  required_fields: [component_name]
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.llm == LLMConfig(
        model="gpt-4o-mini",
        base_url="http://localhost:12434/engines/v1",
        api_key="test-key",
        temperature=0.15,
        max_tokens=256,
        request_timeout=60.0,
    )
    assert config.templates.directory == (tmp_path / "design/templates").resolve()
    assert config.templates.global_default == "fallback"
    assert config.templates.max_inheritance_depth == 4
    assert config.templates.aliases["ticket"] == "component"
    assert config.templates.aliases["comp"] == "component"
    assert config.templates.cache_ttl == 120
    assert config.templates.cache_path == (tmp_path / ".designgen/templates.json").resolve()
    assert config.strategy.complexity_threshold == 7
    assert config.strategy.reasoning_timeout == 12.5
    assert config.project.name == "Storefront"
    assert config.project.tech_stack == ["React", "TypeScript"]
    assert config.project.team_standards == {"naming": "BEM", "testing": "Jest + RTL"}
    heuristics = config.heuristics
    assert heuristics.component_thresholds == (1, 3)
    assert heuristics.base_hours["complex"] == 24.0
    assert heuristics.base_hours["simple"] == 4.0
    assert heuristics.complex_tech_keywords == ["aem", "sitecore"]
    assert heuristics.story_point_bands == [(2.0, 1), (6.0, 3)]
    assert heuristics.required_fields == ["component_name"]


def test_load_config_accepts_explicit_file_path(tmp_path: Path) -> None:
    config_file = tmp_path / "custom.yml"
    config_file.write_text("strategy:\n  complexity_threshold: 2\n", encoding="utf-8")

    assert load_config(config_file).strategy.complexity_threshold == 2


def test_empty_llm_section_is_ignored(tmp_path: Path) -> None:
    (tmp_path / ".designgen.yml").write_text("llm: {}\n", encoding="utf-8")
    assert load_config(tmp_path).llm is None


@pytest.mark.parametrize(
    "content",
    [
        "llm: [unclosed",
        "- just\n- a list\n",
        "templates:\n  max_inheritance_depth: 0\n",
        "strategy:\n  reasoning_timeout: -1\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str) -> None:
    (tmp_path / ".designgen.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)
