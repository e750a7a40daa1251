from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

ToolHandler = Callable[[dict[str, Any]], Awaitable["ToolResponse"]]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": self.properties,
            "required": list(self.required),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass(frozen=True)
class ToolRequest:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResponse:
    text: str
    is_error: bool = False

    @property
    def content(self) -> list[dict[str, Any]]:
        return [{"type": "text", "text": self.text}]

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "isError": self.is_error}


def text_response(text: str) -> ToolResponse:
    return ToolResponse(text=text)


def error_response(text: str) -> ToolResponse:
    return ToolResponse(text=text, is_error=True)


@dataclass(frozen=True)
class Tool:
    descriptor: ToolDescriptor
    execute: ToolHandler

    @property
    def name(self) -> str:
        return self.descriptor.name


class ToolRegistry:
    """Ordered name -> tool binding shared by ``tools/list`` and dispatch.

    Descriptor and handler are registered together, so every advertised
    tool is callable.  Once frozen the registry cannot change.
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False
        for tool in tools or []:
            self.add(tool)

    def add(self, tool: Tool) -> Tool:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen")
        if tool.name in self._tools:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        self._tools[tool.name] = tool
        return tool

    def register(self, descriptor: ToolDescriptor, execute: ToolHandler) -> Tool:
        return self.add(Tool(descriptor=descriptor, execute=execute))

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
