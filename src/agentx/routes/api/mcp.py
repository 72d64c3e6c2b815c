"""MCP server status preview."""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from agentx.config import get_settings
from agentx.mcp.config import McpConfig
from agentx.mcp.status import StatusResponse, check_all

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mcp", tags=["api-mcp"])
_limiter = Limiter(key_func=get_remote_address)


class StatusInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mcp_config: McpConfig | None = Field(default=None, alias="mcpConfig")


def _status_limit() -> str:
    return f"{get_settings().rate_limit_status_per_minute}/minute"


@router.post("/status", response_model=StatusResponse, response_model_exclude_none=True)
@_limiter.limit(_status_limit)
async def mcp_status(request: Request, body: StatusInput) -> StatusResponse:
    del request
    servers = dict(body.mcp_config.servers) if body.mcp_config else {}
    if not servers:
        logger.info("MCP status requested with no servers configured")
        return StatusResponse()
    report = await check_all(servers, timeout_s=get_settings().mcp_status_timeout_seconds)
    logger.info(
        "MCP status check complete: %d servers, %d total tools",
        len(report.servers),
        report.total_tools_count,
    )
    return report
