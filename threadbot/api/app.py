"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.requests import Request
from starlette.responses import JSONResponse

from threadbot import __version__
from threadbot.agent.runner import create_runner
from threadbot.api.routes import router as core_router
from threadbot.core.config.loader import load_config
from threadbot.core.errors import ThreadbotError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: Config → AgentRunner (fails fast on ConfigurationError)."""
    config = load_config()
    runner = create_runner(config)

    app.state.config = config
    app.state.runner = runner

    logger.info(f"threadbot API started — model: {config.agent.model}")
    yield
    logger.info("threadbot API shutting down")


# ── Error mapping ────────────────────────────────────────────


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message}},
    )


async def threadbot_error_handler(request: Request, exc: ThreadbotError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} → {exc.code}: {exc.message}")
    return _error(exc.http_status, exc.code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return _error(422, "invalid_request", f"{loc}: {first.get('msg', 'invalid request')}")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error(500, "internal_error", "Internal server error")


# ── App Factory ──────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="threadbot API",
        description="Checkpointed conversational agent with retrieval",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ThreadbotError, threadbot_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(core_router)
    return app


app = create_app()
