"""Error taxonomy — every fatal condition carries a stable code."""

from __future__ import annotations

from typing import Any


class ThreadbotError(Exception):
    """Base error. ``code`` is stable and safe to expose to clients."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ConfigurationError(ThreadbotError):
    """Missing credentials or endpoints. Raised at startup."""

    code = "configuration_error"
    http_status = 503


# ── Tool errors (recoverable inside the loop) ───────────────


class ToolError(ThreadbotError):
    """Base for errors a tool call can produce."""

    def __init__(self, message: str, tool_name: str = "", **details: Any) -> None:
        super().__init__(message, **details)
        self.tool_name = tool_name


class UnknownTool(ToolError):
    code = "unknown_tool"
    http_status = 400


class ToolArgumentInvalid(ToolError):
    code = "tool_argument_invalid"
    http_status = 400


class ToolExecutionError(ToolError):
    """A tool's external call failed.

    Recoverable until the same tool fails identically
    ``agent.max_tool_failures`` times in a row within one invocation.
    """

    code = "tool_execution_error"
    http_status = 502


# ── Fatal for the current invocation ────────────────────────


class RecursionLimitExceeded(ThreadbotError):
    code = "recursion_limit_exceeded"
    http_status = 508

    def __init__(self, step_count: int, limit: int) -> None:
        super().__init__(
            f"Agent exceeded {limit} tool cycles without producing a final answer",
            step_count=step_count,
            limit=limit,
        )
        self.step_count = step_count
        self.limit = limit


class ProviderError(ThreadbotError):
    """Model, embedding, or store failure after bounded retries."""

    code = "provider_error"
    http_status = 502


class ProviderTimeout(ProviderError):
    code = "provider_timeout"
    http_status = 504


class CheckpointError(ProviderError):
    code = "checkpoint_error"
    http_status = 503


class ThreadNotFound(ThreadbotError):
    code = "thread_not_found"
    http_status = 404
