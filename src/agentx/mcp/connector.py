"""Open one MCP connection over stdio, streamable HTTP or SSE."""

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import get_default_environment, stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation, Tool

from agentx.errors import ConnectError, SchemaError, describe_exception
from agentx.mcp.catalog import RemoteTool, ToolExecutor
from agentx.mcp.config import ProviderConfig, TransportKind
from agentx.mcp.schema import build_validator, parameters_schema

logger = logging.getLogger(__name__)

CLIENT_INFO = Implementation(name="agentx-mcp-client", version="1.0.0")


@dataclass(slots=True)
class Connection:
    """A live session with one provider, owned by exactly one turn."""

    name: str
    kind: TransportKind
    session: Any
    tools: dict[str, RemoteTool]
    stop: asyncio.Event | None = None
    task: asyncio.Task[None] | None = None
    closed: bool = False

    async def aclose(self, timeout_s: float = 5.0) -> None:
        if self.closed:
            return
        self.closed = True
        if self.task is None or self.stop is None:
            return
        self.stop.set()
        try:
            await asyncio.wait_for(self.task, timeout=timeout_s)
        except TimeoutError as exc:
            raise ConnectError(
                f"closing {self.name!r} timed out after {timeout_s:g}s", provider=self.name
            ) from exc


async def _open_transport(
    stack: AsyncExitStack, config: ProviderConfig, kind: TransportKind
) -> tuple[Any, Any]:
    if kind is TransportKind.STDIO:
        params = StdioServerParameters(
            command=str(config.executable),
            args=list(config.arguments),
            env={**get_default_environment(), **config.environment},
            cwd=config.cwd,
        )
        read, write = await stack.enter_async_context(stdio_client(params))
    elif kind is TransportKind.HTTP:
        read, write, _ = await stack.enter_async_context(
            streamablehttp_client(str(config.endpoint))
        )
    else:
        read, write = await stack.enter_async_context(sse_client(str(config.endpoint)))
    return read, write


async def _hold_session(
    config: ProviderConfig,
    kind: TransportKind,
    ready: "asyncio.Future[tuple[ClientSession, list[Tool]]]",
    stop: asyncio.Event,
) -> None:
    # The transport contexts use anyio cancel scopes, which must be exited by
    # the task that entered them; this task owns them until `stop` is set.
    try:
        async with AsyncExitStack() as stack:
            read, write = await _open_transport(stack, config, kind)
            session = await stack.enter_async_context(
                ClientSession(read, write, client_info=CLIENT_INFO)
            )
            await session.initialize()
            listed = await session.list_tools()
            if not ready.done():
                ready.set_result((session, list(listed.tools)))
            await stop.wait()
    except Exception as exc:
        if not ready.done():
            ready.set_exception(exc)
            return
        raise


async def _abandon(task: asyncio.Task[None]) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


def _remote_executor(session: Any, tool_name: str) -> ToolExecutor:
    async def execute(arguments: dict[str, Any]) -> Any:
        return await session.call_tool(tool_name, arguments)

    return execute


def build_remote_tools(
    name: str, kind: TransportKind, session: Any, listed: list[Tool]
) -> dict[str, RemoteTool]:
    tools: dict[str, RemoteTool] = {}
    for tool in listed:
        try:
            schema = parameters_schema(tool.inputSchema)
            validator = build_validator(tool.name, schema)
        except SchemaError as exc:
            logger.warning("Skipping tool %s from MCP server %s: %s", tool.name, name, exc)
            continue
        tools[tool.name] = RemoteTool(
            name=tool.name,
            description=tool.description or "",
            input_schema=schema,
            validator=validator,
            execute=None if kind is TransportKind.STDIO else _remote_executor(session, tool.name),
        )
    return tools


async def connect(name: str, config: ProviderConfig, *, timeout_s: float = 30.0) -> Connection:
    """Connect to one provider and discover its tools.

    Raises InvalidConfig when the entry names no transport and ConnectError for
    any spawn, handshake, discovery or timeout failure; nothing else escapes.
    """
    kind = config.transport(name)
    loop = asyncio.get_running_loop()
    ready: asyncio.Future[tuple[ClientSession, list[Tool]]] = loop.create_future()
    stop = asyncio.Event()
    task = asyncio.create_task(_hold_session(config, kind, ready, stop), name=f"mcp:{name}")
    try:
        session, listed = await asyncio.wait_for(ready, timeout=timeout_s)
    except TimeoutError as exc:
        await _abandon(task)
        raise ConnectError(
            f"handshake with MCP server {name!r} timed out after {timeout_s:g}s", provider=name
        ) from exc
    except asyncio.CancelledError:
        await _abandon(task)
        raise
    except Exception as exc:
        await _abandon(task)
        raise ConnectError(
            f"failed to connect to MCP server {name!r}: {describe_exception(exc)}", provider=name
        ) from exc

    tools = build_remote_tools(name, kind, session, listed)
    logger.info("Connected to MCP server %s (%s, %d tools)", name, kind.value, len(tools))
    return Connection(name=name, kind=kind, session=session, tools=tools, stop=stop, task=task)
