"""FastAPI control surface: start a run, poll its progress, read ledger stats."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from lexis_kg.api.run_context import RunAlreadyActiveError
from lexis_kg.api.runner import RunManager
from lexis_kg.config import LexisConfig
from lexis_kg.providers.base import LLMProvider
from lexis_kg.storage.base import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter()


# -------------------------------------------------------------------------
# Schemas
# -------------------------------------------------------------------------


class StartRequest(BaseModel):
    """Request to start an enrichment run."""

    limit: int = Field(..., gt=0, description="Maximum number of pending items to select")


class StartResponse(BaseModel):
    accepted: bool
    limit: int
    runId: str


# -------------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------------


def _runner(request: Request) -> RunManager:
    return request.app.state.runner


@router.post("/start", response_model=StartResponse, status_code=202)
async def start_run(body: StartRequest, request: Request) -> dict[str, Any]:
    """Accept a run; 400 while another run is still active."""
    try:
        ctx = _runner(request).start(body.limit)
    except RunAlreadyActiveError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"accepted": True, "limit": body.limit, "runId": ctx.run_id}


@router.get("/progress")
async def get_progress(request: Request) -> dict[str, Any]:
    return _runner(request).progress()


@router.get("/stats")
async def get_stats(request: Request) -> dict[str, Any]:
    return await _runner(request).stats()


# -------------------------------------------------------------------------
# Factory
# -------------------------------------------------------------------------


def create_app(config: LexisConfig, storage: StorageBackend, llm: LLMProvider) -> FastAPI:
    """
    Create the control-surface application.

    Args:
        config: Pipeline configuration
        storage: Storage backend (initialized on startup if needed)
        llm: Oracle provider
    """
    runner = RunManager(config, storage, llm)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage.initialize()
        logger.info("Control surface starting")
        yield
        await runner.shutdown()
        logger.info("Control surface stopped")

    app = FastAPI(
        title="lexis-kg",
        description="Control surface for the lexical enrichment pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.runner = runner
    app.include_router(router, tags=["Runs"])
    return app
