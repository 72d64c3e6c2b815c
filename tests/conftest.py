import os
import sys
from pathlib import Path

import pytest
from mcp.types import CallToolResult, TextContent

from agentx.config import get_settings
from agentx.logging import clear_context
from agentx.mcp.catalog import RemoteTool
from agentx.mcp.config import TransportKind
from agentx.mcp.connector import Connection
from agentx.mcp.schema import build_validator, parameters_schema

FIXTURES = Path(__file__).parent / "fixtures"

_TEST_ENV = {
    "APP_ENV": "dev",
    "AI_GATEWAY_API_KEY": "",
    "GOOGLE_GENERATIVE_AI_API_KEY": "",
    "DEFAULT_MODEL": "google/gemini-2.5-flash-lite",
    "MAX_TOOL_ROUND_TRIPS": "10",
    "MCP_CONNECT_TIMEOUT_SECONDS": "10",
    "MCP_STATUS_TIMEOUT_SECONDS": "10",
    "RATE_LIMIT_CHAT_PER_MINUTE": "1000",
    "RATE_LIMIT_STATUS_PER_MINUTE": "1000",
}


@pytest.fixture(autouse=True)
def test_env(monkeypatch: pytest.MonkeyPatch):
    for key, value in _TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    clear_context()


@pytest.fixture
def fs_server_config() -> dict[str, object]:
    """Stdio config for the bundled filesystem-like MCP server."""
    return {
        "command": sys.executable,
        "args": [str(FIXTURES / "fs_server.py")],
        "env": {"PYTHONPATH": os.pathsep.join(sys.path)},
    }


class FakeSession:
    """Stands in for an MCP ClientSession; records every tool call."""

    def __init__(self, results: dict[str, object] | None = None, *, fail: str | None = None):
        self.results = results or {}
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    async def call_tool(self, name: str, arguments: dict) -> CallToolResult:
        self.calls.append((name, arguments))
        if self.fail is not None:
            raise RuntimeError(self.fail)
        return CallToolResult(
            content=[TextContent(type="text", text=str(self.results.get(name, "")))]
        )


def make_connection(
    name: str,
    tools: dict[str, str],
    *,
    kind: TransportKind = TransportKind.STDIO,
    session: FakeSession | None = None,
) -> Connection:
    session = session or FakeSession(tools)
    remote = {}
    for tool_name in tools:
        schema = parameters_schema({"type": "object", "properties": {"path": {"type": "string"}}})
        executor = None
        if kind is not TransportKind.STDIO:
            executor = _executor(session, tool_name)
        remote[tool_name] = RemoteTool(
            name=tool_name,
            description=f"{tool_name} tool",
            input_schema=schema,
            validator=build_validator(tool_name, schema),
            execute=executor,
        )
    return Connection(name=name, kind=kind, session=session, tools=remote)


def _executor(session: FakeSession, tool_name: str):
    async def execute(arguments: dict) -> CallToolResult:
        return await session.call_tool(tool_name, arguments)

    return execute


@pytest.fixture
def connection_factory():
    return make_connection


@pytest.fixture
def session_factory():
    return FakeSession
