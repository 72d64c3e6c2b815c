"""Tool catalog types shared by the connector, registry and dispatcher."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from agentx.mcp.schema import ToolInput

SEPARATOR = "__"

ToolExecutor = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(slots=True)
class RemoteTool:
    """A tool as discovered on one connection.

    `execute` is only set for HTTP/SSE connections, whose tools call back into
    the session themselves; stdio tools go through the session's call exchange.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    validator: type[ToolInput]
    execute: ToolExecutor | None = None


@dataclass(frozen=True, slots=True)
class ToolCatalogEntry:
    """A tool as advertised to the model: namespaced, never executable directly."""

    name: str
    provider: str
    remote_name: str
    description: str
    parameters: dict[str, Any]
    validator: type[ToolInput]
    requires_approval: bool = True

    def schema(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


def namespaced_name(provider: str, tool_name: str) -> str:
    return f"{provider}{SEPARATOR}{tool_name}"


def catalog_entry(provider: str, tool: RemoteTool) -> ToolCatalogEntry:
    return ToolCatalogEntry(
        name=namespaced_name(provider, tool.name),
        provider=provider,
        remote_name=tool.name,
        description=tool.description,
        parameters=tool.input_schema,
        validator=tool.validator,
    )
