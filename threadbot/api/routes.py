"""Core API routes — chat threads and health."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from threadbot import __version__
from threadbot.agent.runner import AgentRunner
from threadbot.api.deps import get_config, get_runner
from threadbot.core.config.schema import Config
from threadbot.memory.models import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    NewChatResponse,
    ThreadHistory,
)

router = APIRouter()

_ERRORS = {
    404: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
    508: {"model": ErrorResponse},
}


@router.post("/chat", response_model=NewChatResponse, responses=_ERRORS)
async def start_chat(
    body: ChatRequest,
    runner: AgentRunner = Depends(get_runner),
):
    """Start a new thread and return its id with the first reply."""
    response, thread_id = await runner.process(body.message)
    return NewChatResponse(thread_id=thread_id, response=response)


@router.post("/chat/{thread_id}", response_model=ChatResponse, responses=_ERRORS)
async def continue_chat(
    thread_id: str,
    body: ChatRequest,
    runner: AgentRunner = Depends(get_runner),
):
    """Continue a thread. Unknown ids start a fresh thread under that id."""
    response, _ = await runner.process(body.message, thread_id=thread_id)
    return ChatResponse(response=response)


@router.get("/chat/{thread_id}", response_model=ThreadHistory, responses=_ERRORS)
async def thread_history(
    thread_id: str,
    runner: AgentRunner = Depends(get_runner),
):
    """All persisted messages of a thread."""
    thread = await runner.history(thread_id)
    return ThreadHistory(thread_id=thread.id, messages=list(thread.messages))


@router.get("/health", response_model=HealthResponse)
async def health(
    runner: AgentRunner = Depends(get_runner),
    config: Config = Depends(get_config),
):
    """Health check."""
    documents = runner.retriever.count if runner.retriever else 0
    return HealthResponse(
        status="ok",
        version=__version__,
        model=config.agent.model,
        documents_count=documents,
    )
