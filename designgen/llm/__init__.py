"""Reasoning adapters for chat completion backends."""

from .reasoning import LLMReasoner, ReasoningCapability
from .runner import LLMRunner, ReasoningError

__all__ = ["LLMReasoner", "LLMRunner", "ReasoningCapability", "ReasoningError"]
