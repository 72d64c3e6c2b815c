"""Conversation transcript in the UI message wire format."""

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentx.ids import short_id

TOOL_PART_PREFIX = "tool-"
DYNAMIC_TOOL = "dynamic-tool"


class ToolState(StrEnum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"


_TOOL_STATES = frozenset(state.value for state in ToolState)


class _Part(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    type: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TextPart(_Part):
    type: Literal["text"] = "text"
    text: str = ""


class ReasoningPart(_Part):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""


class ToolCallPart(_Part):
    """One tool invocation proposed by the model.

    The state only moves forward: input-streaming, input-available (awaiting
    approval), then output-available or output-error. A client records its
    decision by setting output to a decision sentinel.
    """

    tool_call_id: str = Field(alias="toolCallId")
    state: ToolState = ToolState.INPUT_AVAILABLE
    input: Any = None
    output: Any = None
    error_text: str | None = Field(default=None, alias="errorText")
    dynamic_tool_name: str | None = Field(default=None, alias="toolName")
    # Set once this backend has resolved the call; such a part is final
    provider_executed: bool | None = Field(default=None, alias="providerExecuted")

    @property
    def tool_name(self) -> str:
        if self.type == DYNAMIC_TOOL:
            return self.dynamic_tool_name or ""
        return self.type[len(TOOL_PART_PREFIX):]

    @property
    def resolved(self) -> bool:
        return self.state in {ToolState.OUTPUT_AVAILABLE, ToolState.OUTPUT_ERROR}


class OtherPart(_Part):
    """Any part kind the core does not interpret (files, sources, step markers)."""


Part = TextPart | ReasoningPart | ToolCallPart | OtherPart


def is_tool_type(part_type: str) -> bool:
    return part_type.startswith(TOOL_PART_PREFIX) or part_type == DYNAMIC_TOOL


def parse_part(raw: Any) -> Part:
    if isinstance(raw, _Part):
        return raw
    if not isinstance(raw, dict):
        raise ValueError("message part must be an object")
    part_type = raw.get("type")
    if not isinstance(part_type, str) or not part_type:
        raise ValueError("message part requires a string 'type'")
    if part_type == "text":
        return TextPart.model_validate(raw)
    if part_type == "reasoning":
        return ReasoningPart.model_validate(raw)
    if is_tool_type(part_type):
        # States from newer clients (approval-requested, output-denied) pass through as-is
        state = raw.get("state", ToolState.INPUT_AVAILABLE)
        if isinstance(state, str) and state not in _TOOL_STATES:
            return OtherPart.model_validate(raw)
        return ToolCallPart.model_validate(raw)
    return OtherPart.model_validate(raw)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(default_factory=lambda: short_id("msg"))
    role: Literal["user", "assistant", "system"]
    parts: list[Part] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _parse_parts(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list | tuple):
            return [parse_part(item) for item in v]
        return v

    def tool_parts(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def to_wire(self) -> dict[str, Any]:
        wire = self.model_dump(mode="json", exclude={"parts"})
        wire["parts"] = [part.to_wire() for part in self.parts]
        return wire
