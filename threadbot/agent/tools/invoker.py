"""ToolInvoker — validate, execute, and report tool calls as tool messages."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError

from threadbot.agent.tools.registry import ToolRegistry
from threadbot.core.errors import (
    ToolArgumentInvalid,
    ToolError,
    ToolExecutionError,
    UnknownTool,
)
from threadbot.memory.models import Message, ToolCall


@dataclass
class FailureTracker:
    """Consecutive identical failures per tool within one invocation.

    ``streaks`` maps tool name to ``(last_error, count)``.
    """

    streaks: dict[str, tuple[str, int]] = field(default_factory=dict)

    def record_failure(self, tool_name: str, error: str) -> int:
        last, count = self.streaks.get(tool_name, ("", 0))
        count = count + 1 if last == error else 1
        self.streaks[tool_name] = (error, count)
        return count

    def record_success(self, tool_name: str) -> None:
        self.streaks.pop(tool_name, None)

    def snapshot(self) -> dict[str, tuple[str, int]]:
        return dict(self.streaks)


class ToolInvoker:
    """Executes ToolCalls against a frozen registry.

    Unknown tools, invalid arguments, and handler failures come back as
    error tool messages so the model can correct itself. A handler that
    fails with the same error ``max_failures`` times in a row raises
    ``ToolExecutionError`` instead.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        max_failures: int = 3,
        timeout_s: float = 30.0,
        parallel: bool = True,
    ) -> None:
        self.registry = registry
        self.max_failures = max_failures
        self.timeout_s = timeout_s
        self.parallel = parallel

    async def invoke(self, call: ToolCall, tracker: FailureTracker | None = None) -> Message:
        """Run one call. Returns its tool message; raises only on a fatal failure streak."""
        return (await self.invoke_batch([call], tracker))[0]

    async def invoke_batch(
        self, calls: list[ToolCall] | tuple[ToolCall, ...], tracker: FailureTracker | None = None
    ) -> list[Message]:
        """Run independent calls; results come back in ``calls`` order.

        A batch is one step of the failure streak: each tool name counts
        at most one failure per batch, and any success in the batch
        resets that tool's streak.
        """
        tracker = tracker if tracker is not None else FailureTracker()
        if self.parallel and len(calls) > 1:
            outcomes = list(await asyncio.gather(*(self._attempt(c) for c in calls)))
        else:
            outcomes = [await self._attempt(c) for c in calls]

        failures: dict[str, ToolExecutionError] = {}
        succeeded: set[str] = set()
        for call, (_, error) in zip(calls, outcomes):
            if error is None:
                succeeded.add(call.name)
            elif isinstance(error, ToolExecutionError):
                failures.setdefault(call.name, error)

        for name in succeeded:
            tracker.record_success(name)
        for name, error in failures.items():
            if name in succeeded:
                continue
            streak = tracker.record_failure(name, error.message)
            if streak >= self.max_failures:
                logger.error(f"Tool '{name}' failed {streak} times in a row, aborting: {error.message}")
                raise error
            logger.warning(f"Tool error ({streak}/{self.max_failures}): {name} → {error.message}")

        return [message for message, _ in outcomes]

    async def _attempt(self, call: ToolCall) -> tuple[Message, ToolError | None]:
        try:
            content = await self._execute(call)
        except ToolExecutionError as e:
            return _error_message(call, e), e
        except ToolError as e:
            logger.warning(f"Tool call rejected: {call.name} → {e.code}: {e.message}")
            return _error_message(call, e), e

        logger.debug(f"Tool result: {call.name} → {content[:100]}")
        return Message.tool(call.id, content), None

    async def _execute(self, call: ToolCall) -> str:
        spec = self.registry.get(call.name)
        if spec is None:
            raise UnknownTool(
                f"Tool '{call.name}' not found. Available tools: {', '.join(self.registry.names)}",
                tool_name=call.name,
            )

        arguments = dict(call.arguments)
        if spec.input_schema is not None:
            try:
                arguments = spec.input_schema.model_validate(arguments).model_dump()
            except ValidationError as e:
                raise ToolArgumentInvalid(
                    f"Invalid arguments for '{call.name}': {_describe(e)}",
                    tool_name=call.name,
                ) from e

        logger.debug(f"Executing tool: {call.name}({arguments})")
        try:
            return await asyncio.wait_for(spec.run(arguments), timeout=self.timeout_s)
        except ToolError:
            raise
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(
                f"Tool '{call.name}' timed out after {self.timeout_s}s", tool_name=call.name
            ) from e
        except Exception as e:
            raise ToolExecutionError(
                f"Tool '{call.name}' failed: {e}", tool_name=call.name
            ) from e


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def _error_message(call: ToolCall, error: ToolError) -> Message:
    return Message.tool(call.id, f"Error [{error.code}]: {error.message}", is_error=True)
