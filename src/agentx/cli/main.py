"""Click CLI group: serve, mcp-status, tools, and ask commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from agentx.config import get_settings
from agentx.errors import AgentXError
from agentx.logging import configure_logging
from agentx.mcp.config import McpConfig, load_mcp_config
from agentx.mcp.registry import ConnectionRegistry
from agentx.mcp.status import check_all


def _load(path: str) -> McpConfig:
    try:
        return load_mcp_config(Path(path))
    except AgentXError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL.")
def cli(log_level: str | None) -> None:
    """AgentX backend CLI."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, app_env=settings.app_env)


@cli.command()
@click.option("--host", default=None, help="Bind host (default: BIND_HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: PORT).")
@click.option("--reload", is_flag=True, help="Reload on source changes.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "agentx.main:app",
        host=host or settings.bind_host,
        port=port or settings.bind_port,
        reload=reload,
        log_config=None,
    )


@cli.command("mcp-status")
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False, path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Print the raw status report.")
def mcp_status(config_path: str, json_output: bool) -> None:
    """Connect to each configured server and report its tools."""
    config = _load(config_path)
    settings = get_settings()
    report = asyncio.run(check_all(config.servers, timeout_s=settings.mcp_status_timeout_seconds))
    if json_output:
        click.echo(json.dumps(report.model_dump(by_alias=True, exclude_none=True), indent=2))
        return
    for server in report.servers:
        if server.connected:
            click.echo(f"[ok]   {server.name}: {server.tools_count} tools")
            for tool in server.tools:
                click.echo(f"         - {tool.name}: {tool.description}")
        else:
            click.echo(f"[fail] {server.name}: {server.error}")
    click.echo(f"total tools: {report.total_tools_count}")


@cli.command()
@click.argument("config_path", type=click.Path(exists=True, dir_okay=False, path_type=str))
def tools(config_path: str) -> None:
    """List the namespaced tool names a turn would advertise."""
    config = _load(config_path)
    settings = get_settings()

    async def _collect() -> list[str]:
        async with ConnectionRegistry(
            config.servers,
            connect_timeout_s=settings.mcp_connect_timeout_seconds,
            close_timeout_s=settings.mcp_close_timeout_seconds,
        ) as registry:
            return registry.tool_names()

    names = asyncio.run(_collect())
    if not names:
        click.echo("no tools available")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("message")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=str),
    default=None,
    help="MCP config file ({\"mcpServers\": {...}}).",
)
@click.option("--model", default=None, help="Model selector (default: DEFAULT_MODEL).")
@click.option("--system", "system_prompt", default=None, help="System prompt.")
@click.option("--yes", "approve_all", is_flag=True, help="Approve every proposed tool call.")
@click.option("--json", "json_output", is_flag=True, help="Print the final transcript as JSON.")
def ask(
    message: str,
    config_path: str | None,
    model: str | None,
    system_prompt: str | None,
    approve_all: bool,
    json_output: bool,
) -> None:
    """Run one conversation locally, confirming each tool call."""
    from agentx.chat.messages import ToolCallPart
    from agentx.cli.chat import converse

    def _decide(part: ToolCallPart) -> bool:
        if approve_all:
            return True
        args = json.dumps(part.input, ensure_ascii=False)
        return click.confirm(f"Run {part.tool_name} with {args}?", default=False)

    try:
        conversation = asyncio.run(
            converse(
                message,
                settings=get_settings(),
                decide=_decide,
                mcp_config=_load(config_path) if config_path else None,
                model=model,
                system_prompt=system_prompt,
            )
        )
    except AgentXError as exc:
        raise click.ClickException(str(exc)) from exc
    if json_output:
        payload = [item.to_wire() for item in conversation.messages]
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return
    click.echo(conversation.reply)


def main() -> None:
    cli()
