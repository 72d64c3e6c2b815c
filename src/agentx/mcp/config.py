"""MCP provider configuration (Cursor / Claude Desktop compatible)."""

import json
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from agentx.errors import ConfigError, InvalidConfig


class TransportKind(StrEnum):
    STDIO = "stdio"
    HTTP = "http"
    SSE = "sse"


class ProviderConfig(BaseModel):
    """One entry of the `mcpServers` mapping.

    Either `executable` (local process) or `endpoint` (remote) selects the
    transport. The original wire names (`command`, `args`, `env`, `url`,
    `type`) are accepted as aliases so pasted desktop-client configs validate.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    executable: str | None = Field(
        default=None, validation_alias=AliasChoices("executable", "command")
    )
    arguments: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("arguments", "args")
    )
    environment: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("environment", "env")
    )
    cwd: str | None = None
    endpoint: str | None = Field(default=None, validation_alias=AliasChoices("endpoint", "url"))
    kind: TransportKind | None = Field(default=None, validation_alias=AliasChoices("kind", "type"))

    @field_validator("executable", "endpoint", "cwd", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("arguments", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return () if v is None else v

    @field_validator("environment", mode="before")
    @classmethod
    def _stringify_env(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(key): str(value) for key, value in v.items()}
        return v

    def transport(self, name: str = "") -> TransportKind:
        """Resolve the transport kind, raising InvalidConfig when none applies."""
        if self.executable:
            return TransportKind.STDIO
        if self.endpoint:
            if self.kind is None or self.kind is TransportKind.HTTP:
                return TransportKind.HTTP
            if self.kind is TransportKind.SSE:
                return TransportKind.SSE
            raise InvalidConfig(
                f"Invalid server config for {name!r}: kind 'stdio' needs an executable",
                provider=name,
            )
        raise InvalidConfig(
            f"Invalid server config for {name!r}: must have either \"command\" or \"url\"",
            provider=name,
        )

    def describe(self) -> str:
        if self.executable:
            return " ".join([self.executable, *self.arguments])
        return self.endpoint or "<unconfigured>"


class McpConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    servers: dict[str, ProviderConfig] = Field(
        default_factory=dict, validation_alias=AliasChoices("mcpServers", "servers")
    )

    @property
    def server_names(self) -> list[str]:
        return list(self.servers)


def parse_mcp_config(text: str) -> McpConfig:
    """Strictly validate a pasted `{"mcpServers": {...}}` document."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON format: {exc.msg}") from exc
    if not isinstance(raw, dict) or not isinstance(raw.get("mcpServers"), dict):
        raise ConfigError("Invalid MCP config: missing mcpServers object")
    try:
        config = McpConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid MCP config: {exc.errors()[0]['msg']}") from exc
    for name, server in config.servers.items():
        server.transport(name)
    return config


def load_mcp_config(path: Path) -> McpConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read MCP config {path}: {exc}") from exc
    return parse_mcp_config(text)
