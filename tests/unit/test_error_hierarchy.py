"""Tests for error hierarchy."""

from agentx.errors import (
    AgentXError,
    ConfigError,
    ConnectError,
    DispatchError,
    DispatchExecutionError,
    InvalidConfig,
    MalformedToolName,
    ProviderNotFound,
    SchemaError,
    StreamFailure,
    TurnError,
    describe_exception,
)


def test_hierarchy() -> None:
    assert issubclass(ConfigError, AgentXError)
    assert issubclass(InvalidConfig, ConfigError)
    assert issubclass(ConnectError, AgentXError)
    assert issubclass(SchemaError, AgentXError)
    for cls in (MalformedToolName, ProviderNotFound, DispatchExecutionError):
        assert issubclass(cls, DispatchError)
    assert issubclass(StreamFailure, AgentXError)
    assert issubclass(TurnError, AgentXError)


def test_retryable_default() -> None:
    assert AgentXError("test").retryable is False
    assert ConnectError("test").retryable is True
    assert StreamFailure("test").retryable is True
    assert DispatchError("test").retryable is False
    assert InvalidConfig("test").retryable is False


def test_provider_is_carried() -> None:
    err = InvalidConfig("no transport", provider="fs")
    assert err.provider == "fs"
    assert str(err) == "no transport"
    assert ConnectError("refused", provider="git").provider == "git"


def test_stream_failure_status() -> None:
    err = StreamFailure("bad gateway", status_code=502)
    assert err.status_code == 502


def test_describe_exception() -> None:
    assert describe_exception(ProviderNotFound("MCP server not found: x")) == (
        "MCP server not found: x"
    )
    assert describe_exception(ValueError("bad")) == "ValueError: bad"
    assert describe_exception(RuntimeError()) == "RuntimeError"
    group = ExceptionGroup("tg", [OSError("connection refused")])
    assert describe_exception(group) == "OSError: connection refused"


def test_catch_as_agentx_error() -> None:
    try:
        raise MalformedToolName("Invalid tool name format: x")
    except AgentXError as exc:
        assert exc.retryable is False
