"""MCP provider connections, tool catalog and dispatch."""

from agentx.mcp.config import McpConfig, ProviderConfig, TransportKind, parse_mcp_config
from agentx.mcp.registry import ConnectionRegistry, close_all, merge_catalog, open_all

__all__ = [
    "ConnectionRegistry",
    "McpConfig",
    "ProviderConfig",
    "TransportKind",
    "close_all",
    "merge_catalog",
    "open_all",
    "parse_mcp_config",
]
