"""Provider contracts."""

from collections.abc import AsyncGenerator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from agentx.chat.messages import Message
from agentx.mcp.catalog import ToolCatalogEntry


@dataclass(slots=True)
class ModelRequest:
    messages: Sequence[Message]
    tools: Mapping[str, ToolCatalogEntry] = field(default_factory=dict)
    system: str | None = None
    max_steps: int = 10


class LanguageModel(Protocol):
    """Streams UI message chunks for one turn.

    Yields `start-step`, text and reasoning chunks, `tool-input-available` /
    `tool-input-error` for proposed calls, and `finish-step`. Tools in the
    request carry no executors, so a step that proposes calls ends the turn.
    """

    model_id: str

    def stream(self, request: ModelRequest) -> AsyncGenerator[dict[str, Any], None]: ...
