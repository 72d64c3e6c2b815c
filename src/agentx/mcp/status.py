"""Preview provider availability without starting a turn."""

import asyncio
import logging
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from agentx.errors import describe_exception
from agentx.mcp import connector
from agentx.mcp.config import ProviderConfig
from agentx.mcp.registry import close_all

logger = logging.getLogger(__name__)


class ToolSummary(BaseModel):
    name: str
    description: str


class ServerStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    connected: bool
    tools_count: int = Field(default=0, alias="toolsCount")
    tools: list[ToolSummary] = Field(default_factory=list)
    error: str | None = None


class StatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    servers: list[ServerStatus] = Field(default_factory=list)
    total_tools_count: int = Field(default=0, alias="totalToolsCount")


async def check_server(
    name: str, config: ProviderConfig, *, timeout_s: float = 15.0
) -> ServerStatus:
    """Connect, list tools and disconnect within one bounded call."""
    try:
        async with asyncio.timeout(timeout_s):
            conn = await connector.connect(name, config, timeout_s=timeout_s)
            try:
                tools = [
                    ToolSummary(name=tool.name, description=tool.description or "No description")
                    for tool in conn.tools.values()
                ]
            finally:
                await close_all([conn])
    except TimeoutError:
        return ServerStatus(name=name, connected=False, error=f"timed out after {timeout_s:g}s")
    except Exception as exc:
        logger.warning("Error checking MCP server %s: %s", name, describe_exception(exc))
        return ServerStatus(name=name, connected=False, error=describe_exception(exc))
    logger.info("MCP server %s: %d tools found", name, len(tools))
    return ServerStatus(name=name, connected=True, tools_count=len(tools), tools=tools)


async def check_all(
    configs: Mapping[str, ProviderConfig], *, timeout_s: float = 15.0
) -> StatusResponse:
    if not configs:
        return StatusResponse()
    servers = await asyncio.gather(
        *(check_server(name, config, timeout_s=timeout_s) for name, config in configs.items())
    )
    return StatusResponse(
        servers=list(servers),
        total_tools_count=sum(server.tools_count for server in servers),
    )
