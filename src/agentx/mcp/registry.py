"""Per-turn connection registry with isolated per-provider failure."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import Protocol

from agentx.errors import AgentXError, describe_exception
from agentx.mcp import connector
from agentx.mcp.catalog import SEPARATOR, ToolCatalogEntry, catalog_entry
from agentx.mcp.config import ProviderConfig
from agentx.mcp.connector import Connection

logger = logging.getLogger(__name__)


class Closable(Protocol):
    name: str

    async def aclose(self, timeout_s: float = ...) -> None: ...


async def open_all(
    configs: Mapping[str, ProviderConfig], *, timeout_s: float = 30.0
) -> list[Connection]:
    """Connect to every configured provider concurrently.

    A failing provider is logged and left out; it never fails its siblings or
    the call. Results keep the configuration's order.
    """
    if not configs:
        return []
    names = list(configs)
    for name in names:
        if SEPARATOR in name:
            logger.warning(
                "MCP server name %r contains %r; its tools cannot be dispatched", name, SEPARATOR
            )
    tasks = [
        asyncio.create_task(connector.connect(name, configs[name], timeout_s=timeout_s))
        for name in names
    ]
    try:
        results = await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        # Release whatever finished connecting before the turn was cancelled
        await asyncio.gather(*tasks, return_exceptions=True)
        opened = [
            task.result()
            for task in tasks
            if not task.cancelled() and task.exception() is None
        ]
        await close_all(opened)
        raise
    connections: list[Connection] = []
    for name, result in zip(names, results, strict=True):
        if isinstance(result, AgentXError):
            logger.warning("Failed to connect to MCP server %s: %s", name, result)
            continue
        if isinstance(result, BaseException):
            logger.error(
                "Unexpected error connecting to MCP server %s: %s",
                name,
                describe_exception(result),
            )
            continue
        connections.append(result)
    logger.info("MCP connections open: %d of %d", len(connections), len(names))
    return connections


def merge_catalog(connections: Sequence[Connection]) -> dict[str, ToolCatalogEntry]:
    """Flatten every connection's tools under `provider__tool` names."""
    merged: dict[str, ToolCatalogEntry] = {}
    for conn in connections:
        for tool in conn.tools.values():
            entry = catalog_entry(conn.name, tool)
            merged[entry.name] = entry
    return merged


async def close_all(connections: Sequence[Closable], *, timeout_s: float = 5.0) -> None:
    """Close every connection; a failure on one is logged and never skips the rest."""
    for conn in connections:
        try:
            await conn.aclose(timeout_s=timeout_s)
        except Exception as exc:
            logger.error("Error closing MCP server %s: %s", conn.name, describe_exception(exc))
        else:
            logger.info("Closed connection to MCP server %s", conn.name)


class ConnectionRegistry:
    """Scoped owner of one turn's connections.

    Use as `async with ConnectionRegistry(configs) as registry:`; every
    connection opened on entry is closed on exit, whatever the exit path.
    """

    def __init__(
        self,
        configs: Mapping[str, ProviderConfig] | None = None,
        *,
        connect_timeout_s: float = 30.0,
        close_timeout_s: float = 5.0,
    ) -> None:
        self.configs: dict[str, ProviderConfig] = dict(configs or {})
        self.connect_timeout_s = connect_timeout_s
        self.close_timeout_s = close_timeout_s
        self.connections: list[Connection] = []

    async def __aenter__(self) -> "ConnectionRegistry":
        self.connections = await open_all(self.configs, timeout_s=self.connect_timeout_s)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        connections, self.connections = self.connections, []
        if connections:
            await close_all(connections, timeout_s=self.close_timeout_s)

    def catalog(self) -> dict[str, ToolCatalogEntry]:
        return merge_catalog(self.connections)

    def tool_names(self) -> list[str]:
        return list(self.catalog())
