"""Generation facade: wires context, templates, strategies and reasoning together."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .config import EngineConfig
from .context.builder import ContextBuilder, ContextObject
from .failsafe import build_legacy_document
from .llm.reasoning import LLMReasoner, ReasoningCapability
from .llm.runner import ReasoningError
from .logging import get_logger, log_exception
from .models import (
    GenerationRequest,
    GenerationResult,
    GenerationWarning,
    Strategy,
    WarningKind,
)
from .postproc.blender import EnhancementBlender, split_sections
from .stores.template_cache import TemplateCache
from .strategy.selector import Availability, StrategySelector
from .templates.renderer import TemplateRenderer
from .templates.store import CompiledTemplate, TemplateAccelerator, TemplateStore
from .templates.variables import build_rendering_context


class ContextBridge(Protocol):
    """Fast context extraction used by the ``context-bridge`` strategy."""

    def extract(self, raw: Mapping[str, Any]) -> Mapping[str, Any]:
        ...


class _StrategyFailed(Exception):
    """Internal signal that a strategy's subsystem failed at execution time."""


@dataclass
class _RequestState:
    """Per-request scratch space; never shared between requests."""

    request: GenerationRequest
    availability: Availability
    warnings: List[GenerationWarning] = field(default_factory=list)
    raw_context: Mapping[str, Any] = field(default_factory=dict)
    context: Optional[ContextObject] = None
    compiled: Optional[CompiledTemplate] = None
    rendered: Optional[str] = None


class GenerationFacade:
    """Serves :class:`GenerationRequest` objects end to end."""

    DEFAULT_REASONING_TIMEOUT = 30.0

    def __init__(
        self,
        template_store: TemplateStore | None,
        context_builder: ContextBuilder,
        strategy_selector: StrategySelector,
        reasoning: ReasoningCapability | None = None,
        *,
        context_bridge: ContextBridge | None = None,
        renderer: TemplateRenderer | None = None,
        blender: EnhancementBlender | None = None,
        reasoning_timeout: float = DEFAULT_REASONING_TIMEOUT,
        max_reasoning_workers: int = 4,
    ) -> None:
        self.template_store = template_store
        self.context_builder = context_builder
        self.strategy_selector = strategy_selector
        self.reasoning = reasoning
        self.context_bridge = context_bridge
        self.renderer = renderer or TemplateRenderer()
        self.blender = blender or EnhancementBlender()
        self.reasoning_timeout = reasoning_timeout
        self.logger = get_logger("orchestrator")
        self._executor = ThreadPoolExecutor(
            max_workers=max_reasoning_workers, thread_name_prefix="designgen-reasoning"
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        *,
        reasoning: ReasoningCapability | None = None,
        context_bridge: ContextBridge | None = None,
        accelerator: TemplateAccelerator | None = None,
    ) -> "GenerationFacade":
        templates = config.templates
        if accelerator is None and templates.cache_path is not None:
            accelerator = TemplateCache(templates.cache_path)
        store = TemplateStore.from_directory(
            templates.directory,
            global_default=templates.global_default,
            platform_default=templates.platform_default,
            max_depth=templates.max_inheritance_depth,
            aliases=templates.aliases,
            accelerator=accelerator,
            accelerator_ttl=templates.cache_ttl,
        )
        if reasoning is None:
            reasoner = LLMReasoner.from_config(config.llm)
            reasoning = reasoner if reasoner.available() else None
        return cls(
            store,
            ContextBuilder(config.heuristics, project_defaults=config.project),
            StrategySelector(config.strategy.complexity_threshold),
            reasoning,
            context_bridge=context_bridge,
            reasoning_timeout=config.strategy.reasoning_timeout,
        )

    def availability(self) -> Availability:
        return Availability(
            reasoning=self._reasoning_available(),
            context_bridge=self.context_bridge is not None,
            templates=self.template_store is not None,
        )

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Serve ``request``; template configuration errors propagate to the caller."""
        started = time.perf_counter()
        availability = self.availability()
        state = _RequestState(
            request=request,
            availability=availability,
            raw_context=request.raw_context or {},
        )

        selected = self.strategy_selector.select(request, availability)
        strategy, steps, visited = self.strategy_selector.downgrade(selected, availability)
        state.warnings.extend(steps)
        path = [selected.value] + [step.value for step in visited]

        while True:
            try:
                content = self._execute(strategy, state)
                break
            except _StrategyFailed:
                strategy, steps, visited = self.strategy_selector.downgrade(
                    strategy, state.availability
                )
                state.warnings.extend(steps)
                path.extend(step.value for step in visited)

        if not content.strip():
            state.warnings.append(
                GenerationWarning(
                    WarningKind.EMPTY_DOCUMENT,
                    f"the {strategy.value} strategy produced an empty document",
                )
            )

        metadata: Dict[str, Any] = {
            "requested_strategy": request.strategy.value if request.strategy else None,
            "selected_strategy": selected.value,
            "downgrade_path": path,
        }
        if state.compiled is not None:
            metadata["template_id"] = state.compiled.template_id
            metadata["template_chain"] = list(state.compiled.chain)
            metadata["resolution"] = state.compiled.resolution

        timing_ms = (time.perf_counter() - started) * 1000
        self.logger.info(
            "Generated %s/%s with %s in %.1fms (%d warnings)",
            request.platform,
            request.document_type,
            strategy.value,
            timing_ms,
            len(state.warnings),
        )
        return GenerationResult(
            content=content,
            strategy_used=strategy,
            warnings=tuple(state.warnings),
            timing_ms=timing_ms,
            requested_strategy=request.strategy,
            metadata=metadata,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self.template_store is not None:
            self.template_store.persist()

    # ------------------------------------------------------------------
    # Strategy execution

    def _execute(self, strategy: Strategy, state: _RequestState) -> str:
        if strategy is Strategy.CONTEXT_BRIDGE:
            self._apply_context_bridge(state)
            return self._render_template(state)
        if strategy is Strategy.TEMPLATE:
            return self._render_template(state)
        if strategy is Strategy.AI:
            return self._call_reasoning(state, state.request.instructions)
        if strategy is Strategy.ENHANCED:
            skeleton = self._render_template(state)
            ai_text = self._call_reasoning(state, self._enhanced_instructions(state, skeleton))
            return self.blender.blend(skeleton, ai_text)
        return build_legacy_document(self._context(state))

    def _context(self, state: _RequestState) -> ContextObject:
        if state.context is None:
            request = state.request
            state.context = self.context_builder.build(
                state.raw_context,
                platform=request.platform,
                document_type=request.document_type,
            )
            state.warnings.extend(state.context.warnings)
        return state.context

    def _render_template(self, state: _RequestState) -> str:
        if state.rendered is not None:
            return state.rendered
        if self.template_store is None:
            state.availability = state.availability.without_templates()
            raise _StrategyFailed("no template store")
        request = state.request
        compiled = self.template_store.resolve(request.platform, request.document_type)
        state.compiled = compiled
        if compiled.is_fallback:
            state.warnings.append(
                GenerationWarning(
                    WarningKind.TEMPLATE_FALLBACK,
                    f"no template for {request.platform}/{request.document_type}; "
                    f"used {compiled.template_id} ({compiled.resolution})",
                )
            )
        context = self._context(state)
        rendering_context = build_rendering_context(
            compiled.variables, context, warnings=state.warnings
        )
        state.rendered = self.renderer.render(compiled, rendering_context, warnings=state.warnings)
        return state.rendered

    def _apply_context_bridge(self, state: _RequestState) -> None:
        if self.context_bridge is None:
            state.availability = state.availability.without_context_bridge()
            raise _StrategyFailed("no context bridge")
        try:
            extracted = self.context_bridge.extract(state.raw_context)
        except Exception as exc:
            log_exception(self.logger, "Context bridge failed", exc)
            state.availability = state.availability.without_context_bridge()
            raise _StrategyFailed(str(exc)) from exc
        if isinstance(extracted, Mapping) and extracted:
            merged = dict(state.raw_context)
            merged.update(extracted)
            state.raw_context = merged
            state.context = None

    def _call_reasoning(self, state: _RequestState, instructions: Optional[str]) -> str:
        context = self._context(state)
        if self.reasoning is None:
            state.availability = state.availability.without_reasoning()
            raise _StrategyFailed("no reasoning capability")
        future = self._executor.submit(self.reasoning.reason, context, instructions)
        try:
            text = future.result(timeout=self.reasoning_timeout)
            if not isinstance(text, str) or not text.strip():
                raise ReasoningError("reasoning capability returned no text")
            return text
        except FuturesTimeoutError as exc:
            future.cancel()
            self.logger.warning(
                "Reasoning timed out after %.1fs; downgrading", self.reasoning_timeout
            )
            state.availability = state.availability.without_reasoning()
            raise _StrategyFailed("timeout") from exc
        except Exception as exc:
            log_exception(self.logger, "Reasoning failed", exc)
            state.availability = state.availability.without_reasoning()
            raise _StrategyFailed(str(exc)) from exc

    @staticmethod
    def _enhanced_instructions(state: _RequestState, skeleton: str) -> str:
        headings = [section.title for section in split_sections(skeleton) if section.level >= 2]
        lines: List[str] = []
        if state.request.instructions:
            lines.append(state.request.instructions.strip())
        if headings:
            lines.append(
                "Label each part of your answer with the matching heading from: "
                + ", ".join(headings)
                + "."
            )
        return "\n".join(lines)

    def _reasoning_available(self) -> bool:
        if self.reasoning is None:
            return False
        try:
            return bool(self.reasoning.available())
        except Exception as exc:
            log_exception(self.logger, "Reasoning availability check failed", exc)
            return False


__all__ = ["ContextBridge", "GenerationFacade"]
