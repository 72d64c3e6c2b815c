"""API router aggregation."""

from fastapi import APIRouter

from agentx.routes.api import chat, mcp

router = APIRouter(prefix="/api", tags=["api"])
router.include_router(chat.router)
router.include_router(mcp.router)
