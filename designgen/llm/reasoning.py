"""Reasoning capability interface and the LLM-backed implementation."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

from ..logging import get_logger
from .runner import LLMRunner, ReasoningError

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from ..config import LLMConfig
    from ..context.builder import ContextObject


@runtime_checkable
class ReasoningCapability(Protocol):
    """Black-box text generation over a context object."""

    def reason(self, context: "ContextObject", instructions: Optional[str]) -> str:
        ...

    def available(self) -> bool:
        ...


class LLMReasoner:
    """Builds design-documentation prompts and sends them through :class:`LLMRunner`."""

    SYSTEM_PROMPT = (
        "You are a senior front-end engineer writing implementation documents from design data. "
        "Stay grounded in the supplied context, label each part with a markdown heading, "
        "and never invent components, URLs or measurements."
    )

    def __init__(self, runner: LLMRunner) -> None:
        self.runner = runner
        self.logger = get_logger("llm.reasoning")

    @classmethod
    def from_config(cls, config: "LLMConfig | None") -> "LLMReasoner":
        if config is None:
            return cls(LLMRunner())
        kwargs: Dict[str, Any] = {}
        if config.base_url:
            kwargs["base_url"] = config.base_url
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.max_tokens is not None:
            kwargs["max_tokens"] = config.max_tokens
        if config.request_timeout is not None:
            kwargs["request_timeout"] = config.request_timeout
        return cls(LLMRunner(config.model, **kwargs))

    def available(self) -> bool:
        return self.runner.configured

    def reason(self, context: "ContextObject", instructions: Optional[str]) -> str:
        prompt = self.build_prompt(context, instructions)
        self.logger.debug("Sending reasoning prompt (%d chars) to %s", len(prompt), self.runner.model)
        text = self.runner.run(prompt, system=self.SYSTEM_PROMPT)
        if not text.strip():
            raise ReasoningError("Reasoning capability returned no text")
        return text

    def build_prompt(self, context: "ContextObject", instructions: Optional[str]) -> str:
        snapshot = context.to_dict()
        source = snapshot.get("source", {})
        project = snapshot.get("project", {})
        lines: List[str] = [
            f"Component: {source.get('component_name')}",
            f"Platform: {project.get('platform')}",
            f"Document type: {project.get('document_type')}",
            "Write the markdown body for this document using only the design context below.",
            "Keep the tone instructional and concise.",
        ]
        if instructions and instructions.strip():
            lines.append("Additional requirements:")
            lines.append(instructions.strip())
        lines.append("Design context (JSON):")
        lines.append(json.dumps(snapshot, indent=2, sort_keys=True, default=str))
        return "\n".join(lines)


__all__ = ["LLMReasoner", "ReasoningCapability", "ReasoningError"]
