"""
Connect Four game service - FastAPI application
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from connect4.api.auth import IdentityProvider, TrustedHeaderIdentityProvider
from connect4.api.routes import games_router, health_router, matchmaking_router, users_router
from connect4.core.config import Settings, get_settings
from connect4.core.exceptions import GameError
from connect4.db.database import init_db
from connect4.services.matchmaking_service import MatchmakingQueue, QueueSweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    identity_provider: Optional[IdentityProvider] = None,
    create_tables: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    queue = MatchmakingQueue(stale_after=settings.queue_stale_threshold)
    sweeper = QueueSweeper(queue, interval_sec=settings.queue_sweep_interval_sec)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if create_tables:
            init_db()
        sweeper.start()
        logger.info("Matchmaking sweeper started (every %ss)", settings.queue_sweep_interval_sec)
        try:
            yield
        finally:
            sweeper.stop()

    app = FastAPI(
        title="Connect Four",
        description="Two-player Connect Four with ratings, matchmaking and abandonment handling",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.matchmaking_queue = queue
    app.state.identity_provider = identity_provider or TrustedHeaderIdentityProvider()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GameError)
    async def handle_game_error(_request: Request, exc: GameError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "INVALID_REQUEST", "message": str(exc.errors())})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unexpected error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR", "message": "Internal server error"})

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(games_router)
    app.include_router(matchmaking_router)
    return app
