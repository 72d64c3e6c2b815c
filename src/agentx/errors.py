"""AgentX exception hierarchy.

All AgentX-specific exceptions inherit from AgentXError,
enabling structured error handling and cleaner catch clauses.
"""


class AgentXError(Exception):
    """Base exception for all AgentX errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ConfigError(AgentXError):
    """Invalid or missing configuration."""


class InvalidConfig(ConfigError):
    """A provider entry has neither an executable nor an endpoint."""

    def __init__(self, message: str = "", *, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class ConnectError(AgentXError):
    """Transport-level connect or handshake failure for one provider."""

    def __init__(self, message: str = "", *, provider: str = "", retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)
        self.provider = provider


class SchemaError(AgentXError):
    """A tool advertised an input schema that cannot be translated."""


class DispatchError(AgentXError):
    """Error resolving or executing a tool call."""


class MalformedToolName(DispatchError):
    """Tool name lacks the provider separator."""


class ProviderNotFound(DispatchError):
    """No open connection owns the requested provider name."""


class DispatchExecutionError(DispatchError):
    """The tool itself failed while executing."""


class StreamFailure(AgentXError):
    """The model capability failed mid-stream."""

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class TurnError(AgentXError):
    """Failure in the turn orchestrator's own sequencing."""


def describe_exception(exc: BaseException) -> str:
    """Short `Type: message` text, unwrapping task-group exception groups."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    if isinstance(exc, AgentXError):
        return str(exc) or type(exc).__name__
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
