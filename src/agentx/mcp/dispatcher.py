"""Route namespaced tool calls to their owning connection."""

import json
import logging
from collections.abc import Sequence
from typing import Any, assert_never

from pydantic import BaseModel

from agentx.errors import (
    DispatchError,
    DispatchExecutionError,
    MalformedToolName,
    ProviderNotFound,
    describe_exception,
)
from agentx.mcp.catalog import SEPARATOR
from agentx.mcp.config import TransportKind
from agentx.mcp.connector import Connection

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error executing tool: "


def split_tool_name(namespaced: str) -> tuple[str, str]:
    provider, sep, tool_name = namespaced.partition(SEPARATOR)
    if not sep:
        raise MalformedToolName(f"Invalid tool name format: {namespaced}")
    return provider, tool_name


def find_connection(connections: Sequence[Connection], provider: str) -> Connection:
    for conn in connections:
        if conn.name == provider:
            return conn
    raise ProviderNotFound(f"MCP server not found: {provider}")


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, list | tuple):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return value


def normalize_result(result: Any) -> str:
    """Collapse a tool result into one text payload.

    Text fragments are joined with newlines; without any text fragment the
    content list (or the whole result) is serialised as JSON.
    """
    if isinstance(result, str):
        return result
    payload = _jsonable(result)
    content = payload.get("content") if isinstance(payload, dict) else None
    if isinstance(content, list):
        texts = [
            str(item.get("text", ""))
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        text = "\n".join(texts)
        return text or json.dumps(content, ensure_ascii=False)
    return json.dumps(payload, ensure_ascii=False, default=str)


async def invoke(
    connections: Sequence[Connection], namespaced: str, arguments: dict[str, Any]
) -> str:
    """Execute a namespaced tool call, raising a DispatchError subclass on failure."""
    provider, tool_name = split_tool_name(namespaced)
    conn = find_connection(connections, provider)
    try:
        match conn.kind:
            case TransportKind.STDIO:
                result = await conn.session.call_tool(tool_name, arguments)
            case TransportKind.HTTP | TransportKind.SSE:
                tool = conn.tools.get(tool_name)
                if tool is None or tool.execute is None:
                    raise DispatchExecutionError(
                        f"Tool not found or not executable: {tool_name}"
                    )
                result = await tool.execute(arguments)
            case _:
                assert_never(conn.kind)
    except DispatchError:
        raise
    except Exception as exc:
        raise DispatchExecutionError(describe_exception(exc)) from exc
    return normalize_result(result)


async def dispatch(
    connections: Sequence[Connection], namespaced: str, arguments: dict[str, Any]
) -> str:
    """Like `invoke`, but every tool-level failure becomes the returned text."""
    try:
        output = await invoke(connections, namespaced, arguments)
    except DispatchError as exc:
        logger.warning("Tool %s failed: %s", namespaced, exc)
        return f"{ERROR_PREFIX}{exc}"
    logger.info("Tool %s executed (%d chars)", namespaced, len(output))
    return output
