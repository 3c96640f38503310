"""Strategy selection and the downgrade chain."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, NamedTuple, Tuple

from ..logging import get_logger
from ..models import GenerationRequest, GenerationWarning, Strategy, WarningKind

DEFAULT_COMPLEXITY_THRESHOLD = 5

# Each strategy falls back to the next when its subsystem is unavailable.
DOWNGRADE_CHAIN = {
    Strategy.AI: Strategy.ENHANCED,
    Strategy.ENHANCED: Strategy.TEMPLATE,
    Strategy.CONTEXT_BRIDGE: Strategy.TEMPLATE,
    Strategy.TEMPLATE: Strategy.LEGACY,
}


class Downgrade(NamedTuple):
    """Outcome of walking the downgrade chain."""

    strategy: Strategy
    warnings: List[GenerationWarning]
    visited: Tuple[Strategy, ...]


@dataclass(frozen=True)
class Availability:
    """Which subsystems can serve a request right now."""

    reasoning: bool = False
    context_bridge: bool = False
    templates: bool = True

    def without_reasoning(self) -> "Availability":
        return replace(self, reasoning=False)

    def without_context_bridge(self) -> "Availability":
        return replace(self, context_bridge=False)

    def without_templates(self) -> "Availability":
        return replace(self, templates=False)


class StrategySelector:
    """Chooses a generation strategy from intent, data richness and availability."""

    def __init__(self, complexity_threshold: int = DEFAULT_COMPLEXITY_THRESHOLD) -> None:
        self.complexity_threshold = complexity_threshold
        self.logger = get_logger("strategy")

    def select(self, request: GenerationRequest, availability: Availability) -> Strategy:
        """Apply the decision table; the first matching rule wins."""
        requested = request.strategy
        if requested in (Strategy.TEMPLATE, Strategy.LEGACY, Strategy.CONTEXT_BRIDGE):
            selected = requested
        elif requested is Strategy.AI:
            selected = Strategy.ENHANCED if self.is_rich(request) else Strategy.AI
        elif requested is Strategy.ENHANCED:
            selected = Strategy.ENHANCED
        elif availability.context_bridge:
            selected = Strategy.CONTEXT_BRIDGE
        else:
            selected = Strategy.TEMPLATE
        self.logger.info(
            "Selected strategy %s (requested=%s)",
            selected.value,
            requested.value if requested else "auto",
        )
        return selected

    def is_rich(self, request: GenerationRequest) -> bool:
        """Complex design data plus a visual artifact."""
        return request.frame_count > self.complexity_threshold and request.has_screenshot

    def downgrade(self, strategy: Strategy, availability: Availability) -> Downgrade:
        """Walk the downgrade chain until a runnable strategy is found.

        Returns the runnable strategy, one warning per step and every strategy
        stepped to after ``strategy``.
        """
        warnings: List[GenerationWarning] = []
        visited: List[Strategy] = []
        current = strategy
        while not self.is_runnable(current, availability):
            following = DOWNGRADE_CHAIN.get(current)
            if following is None:
                break
            kind, reason = self._unavailable_reason(current, availability)
            warnings.append(
                GenerationWarning(
                    kind,
                    f"{current.value} strategy unavailable ({reason}); downgraded to {following.value}",
                )
            )
            self.logger.info("Downgrading %s -> %s: %s", current.value, following.value, reason)
            current = following
            visited.append(current)
        return Downgrade(current, warnings, tuple(visited))

    @staticmethod
    def is_runnable(strategy: Strategy, availability: Availability) -> bool:
        if strategy in (Strategy.AI, Strategy.ENHANCED):
            runnable = availability.reasoning
            if strategy is Strategy.ENHANCED:
                runnable = runnable and availability.templates
            return runnable
        if strategy is Strategy.CONTEXT_BRIDGE:
            return availability.context_bridge and availability.templates
        if strategy is Strategy.TEMPLATE:
            return availability.templates
        return True

    @staticmethod
    def _unavailable_reason(
        strategy: Strategy, availability: Availability
    ) -> Tuple[WarningKind, str]:
        if strategy in (Strategy.AI, Strategy.ENHANCED) and not availability.reasoning:
            return WarningKind.REASONING_UNAVAILABLE, "reasoning capability unavailable"
        if strategy is Strategy.CONTEXT_BRIDGE:
            return WarningKind.SUBSYSTEM_UNAVAILABLE, "context bridge unavailable"
        return WarningKind.SUBSYSTEM_UNAVAILABLE, "template subsystem unavailable"


__all__ = [
    "Availability",
    "DEFAULT_COMPLEXITY_THRESHOLD",
    "DOWNGRADE_CHAIN",
    "Downgrade",
    "StrategySelector",
]
