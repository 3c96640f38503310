"""FastAPI application entrypoint for designgen service mode."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import load_config
from ..logging import get_logger
from ..models import GenerationRequest, GenerationResult, Strategy
from ..orchestrator import GenerationFacade
from ..templates.store import TemplateCycleError, TemplateResolutionError

logger = get_logger("service")


class GenerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    strategy: Optional[str] = None
    platform: str
    document_type: str = Field(alias="documentType")
    raw_context: Dict[str, Any] = Field(default_factory=dict, alias="rawContext")
    instructions: Optional[str] = None


class GenerateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    strategy_used: str = Field(alias="strategyUsed")
    warnings: List[str]
    timing_ms: float = Field(alias="timingMs")


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    reasoning: bool = False
    context_bridge: bool = Field(default=False, alias="contextBridge")


class TemplateEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    platform: str
    document_type: str = Field(alias="documentType")


class TemplatesResponse(BaseModel):
    templates: List[TemplateEntry]
    cache: Dict[str, int]


class ReloadResponse(BaseModel):
    status: str
    templates: int


def _default_facade() -> GenerationFacade:
    return GenerationFacade.from_config(load_config(Path.cwd()))


def create_app(
    facade_factory: Callable[[], GenerationFacade] = _default_facade,
) -> FastAPI:
    """Create the FastAPI application exposing designgen operations."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        app.state.facade.close()

    app = FastAPI(title="DesignGen Service", version="1.0.0", lifespan=lifespan)
    app.state.facade = facade_factory()

    async def get_facade(request: Request) -> GenerationFacade:
        return request.app.state.facade

    @app.get("/health", response_model=HealthResponse)
    async def health(facade: GenerationFacade = Depends(get_facade)) -> HealthResponse:
        availability = facade.availability()
        return HealthResponse(
            status="ok",
            reasoning=availability.reasoning,
            context_bridge=availability.context_bridge,
        )

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(
        payload: GenerateRequest,
        facade: GenerationFacade = Depends(get_facade),
    ) -> GenerateResponse:
        try:
            strategy = Strategy.parse(payload.strategy)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

        request = GenerationRequest(
            platform=payload.platform,
            document_type=payload.document_type,
            raw_context=payload.raw_context,
            strategy=strategy,
            instructions=payload.instructions,
        )

        def _run_generate() -> GenerationResult:
            return facade.generate(request)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:  # pragma: no cover - fallback path when not in async context
            result = _run_generate()
        else:
            result = await loop.run_in_executor(None, _run_generate)
        return GenerateResponse.model_validate(result.to_response())

    @app.get("/templates", response_model=TemplatesResponse)
    async def list_templates(facade: GenerationFacade = Depends(get_facade)) -> TemplatesResponse:
        store = facade.template_store
        if store is None:
            return TemplatesResponse(templates=[], cache={})
        return TemplatesResponse(
            templates=[
                TemplateEntry(platform=platform, document_type=document_type)
                for platform, document_type in store.list_templates()
            ],
            cache=store.cache_stats(),
        )

    @app.post("/templates/reload", response_model=ReloadResponse)
    async def reload_templates(facade: GenerationFacade = Depends(get_facade)) -> ReloadResponse:
        store = facade.template_store
        count = store.reload() if store is not None else 0
        return ReloadResponse(status="ok", templates=count)

    @app.exception_handler(TemplateCycleError)
    async def template_cycle_handler(_: Any, exc: TemplateCycleError) -> JSONResponse:
        logger.error("Template configuration error: %s", exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(TemplateResolutionError)
    async def template_resolution_handler(
        _: Any, exc: TemplateResolutionError
    ) -> JSONResponse:
        logger.warning("Template resolution failed: %s", exc)
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "0.0.0.0", port: int = 8000, *, config_path: Path | None = None
) -> None:  # pragma: no cover - integration path
    import uvicorn

    if config_path is None:
        app = create_app()
    else:
        app = create_app(lambda: GenerationFacade.from_config(load_config(config_path)))
    uvicorn.run(app, host=host, port=port)
