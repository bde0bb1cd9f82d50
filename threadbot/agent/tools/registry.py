"""Tool registry — name to ToolSpec mapping, read-only after startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from langchain_core.tools import BaseTool
from pydantic import BaseModel


@dataclass(frozen=True)
class ToolSpec:
    """A registered tool: LangChain tool plus its argument model."""

    tool: BaseTool
    group: str = "default"

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def description(self) -> str:
        return (self.tool.description or "").strip()

    @property
    def input_schema(self) -> type[BaseModel] | None:
        schema = self.tool.args_schema
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            return schema
        return None

    async def run(self, arguments: dict[str, Any]) -> str:
        """Invoke the handler with already-validated arguments."""
        result = await self.tool.ainvoke(arguments)
        return result if isinstance(result, str) else str(result)

    def definition(self) -> dict[str, Any]:
        """OpenAI function-calling format."""
        schema = self.input_schema.model_json_schema() if self.input_schema else {}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


class ToolRegistry:
    """Central tool registry.

    Built once at startup, then frozen. Lookups are safe to share between
    concurrent invocations.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._frozen = False

    def register(self, tool: BaseTool, group: str = "default") -> None:
        if self._frozen:
            raise RuntimeError("ToolRegistry is frozen")
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = ToolSpec(tool=tool, group=group)

    def register_group(self, group: str, tools: list[BaseTool]) -> None:
        for t in tools:
            self.register(t, group=group)

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._tools.values()]

    def get_catalog(self) -> list[dict[str, Any]]:
        """Catalog for status output."""
        return [
            {
                "name": name,
                "group": spec.group,
                "description": spec.description.split("\n")[0],
            }
            for name, spec in sorted(self._tools.items())
        ]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
