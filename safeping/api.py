"""FastAPI application exposing the SafePing signaling relay over HTTP."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .signaling import ExchangeHandler, ExpirySweeper, InvalidMessage, SessionNotFound, SessionStore
from .signaling.sweeper import SESSION_MAX_AGE_S, SWEEP_INTERVAL_S

# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------
HOST = os.getenv("SIGNAL_HOST", "0.0.0.0")
PORT = int(os.getenv("SIGNAL_PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SIGNAL_PATH = "/api/signal"

logger = logging.getLogger(__name__)


class PublishRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    type: Optional[str] = None
    data: Any = None


class PublishResponse(BaseModel):
    success: bool = True


def _error(message: str, status_code: int, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


router = APIRouter()


@router.post(SIGNAL_PATH, response_model=PublishResponse)
def publish_signal(payload: PublishRequest, request: Request):
    """Store an offer, answer or candidate for the given session."""

    handler: ExchangeHandler = request.app.state.handler
    try:
        handler.publish(payload.session_id, payload.type, payload.data)
    except InvalidMessage as exc:
        logger.debug("[signal] rejected publish: %s", exc)
        return _error(str(exc), 400)
    return PublishResponse()


@router.get(SIGNAL_PATH)
def fetch_signal(
    request: Request,
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    msg_type: Optional[str] = Query(default=None, alias="type"),
):
    """Return the stored negotiation data; never creates a session."""

    handler: ExchangeHandler = request.app.state.handler
    try:
        return handler.fetch(session_id, msg_type)
    except InvalidMessage as exc:
        logger.debug("[signal] rejected fetch: %s", exc)
        return _error(str(exc), 400)
    except SessionNotFound as exc:
        return _error(str(exc), 404)


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    sweeper: ExpirySweeper = request.app.state.sweeper
    return {
        "status": "ok",
        "sessions": len(request.app.state.store),
        "max_age_s": sweeper.max_age,
        "sweep_interval_s": sweeper.interval,
    }


# ------------------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------------------
async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = getattr(exc, "headers", None)
    if exc.status_code == 405:
        if request.url.path == SIGNAL_PATH:
            headers = {"Allow": "GET, POST"}
        return _error("Method not allowed", 405, headers=headers)
    return _error(str(exc.detail), exc.status_code, headers=headers)


async def _body_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error("Missing required fields", 400)


# ------------------------------------------------------------------------------
# App factory
# ------------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_task = app.state.sweeper.start()

    yield

    sweep_task.cancel()


def create_app(
    store: SessionStore | None = None,
    max_age: float = SESSION_MAX_AGE_S,
    sweep_interval: float = SWEEP_INTERVAL_S,
) -> FastAPI:
    """Build the relay app around *store*, creating a fresh one if omitted."""

    app = FastAPI(title="SafePing signaling relay", version="0.1.0", lifespan=lifespan)
    app.state.store = store if store is not None else SessionStore()
    app.state.handler = ExchangeHandler(app.state.store)
    app.state.sweeper = ExpirySweeper(app.state.store, max_age=max_age, interval=sweep_interval)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _body_error)
    app.include_router(router)
    return app


app = create_app()


def main():
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()


__all__ = ["app", "create_app", "main"]
