"""CLI chat helpers: run turns locally and rebuild the assistant message."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from agentx.chat.hitl import APPROVAL_NO, APPROVAL_YES, pending_tool_calls
from agentx.chat.messages import (
    Message,
    OtherPart,
    Part,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolState,
)
from agentx.chat.orchestrator import ModelFactory, TurnRequest, run_turn
from agentx.chat.stream import ChunkRecorder
from agentx.config import Settings
from agentx.mcp.config import McpConfig
from agentx.providers.factory import build_model

logger = logging.getLogger(__name__)

Decide = Callable[[ToolCallPart], bool]


def assemble_message(chunks: list[dict[str, Any]], base: Message | None = None) -> Message:
    """Apply recorded stream chunks to an assistant message, the way a UI client does."""
    parts: list[Part] = list(base.parts) if base else []
    message_id = base.id if base else None
    open_blocks: dict[str, int] = {}
    by_call: dict[str, int] = {
        part.tool_call_id: index
        for index, part in enumerate(parts)
        if isinstance(part, ToolCallPart)
    }
    for chunk in chunks:
        kind = chunk.get("type")
        if kind == "start" and chunk.get("messageId"):
            message_id = str(chunk["messageId"])
        elif kind == "start-step":
            parts.append(OtherPart(type="step-start"))
        elif kind in {"text-start", "reasoning-start"}:
            open_blocks[str(chunk.get("id"))] = len(parts)
            parts.append(TextPart() if kind == "text-start" else ReasoningPart())
        elif kind in {"text-delta", "reasoning-delta"}:
            index = open_blocks.get(str(chunk.get("id")))
            if index is None:
                continue
            current = parts[index]
            text = getattr(current, "text", "") + str(chunk.get("delta", ""))
            parts[index] = current.model_copy(update={"text": text})
        elif kind == "tool-input-available":
            by_call[str(chunk["toolCallId"])] = len(parts)
            parts.append(
                ToolCallPart(
                    type=f"tool-{chunk['toolName']}",
                    tool_call_id=str(chunk["toolCallId"]),
                    input=chunk.get("input"),
                )
            )
        elif kind == "tool-input-error":
            by_call[str(chunk["toolCallId"])] = len(parts)
            parts.append(
                ToolCallPart(
                    type=f"tool-{chunk['toolName']}",
                    tool_call_id=str(chunk["toolCallId"]),
                    state=ToolState.OUTPUT_ERROR,
                    input=chunk.get("input"),
                    error_text=chunk.get("errorText"),
                )
            )
        elif kind == "tool-output-available":
            index = by_call.get(str(chunk.get("toolCallId")))
            if index is None:
                continue
            parts[index] = parts[index].model_copy(
                update={
                    "state": ToolState.OUTPUT_AVAILABLE,
                    "output": chunk.get("output"),
                    "provider_executed": chunk.get("providerExecuted"),
                }
            )
    if message_id is None:
        return Message(role="assistant", parts=parts)
    return Message(id=message_id, role="assistant", parts=parts)


def record_decisions(message: Message, decide: Decide) -> Message:
    """Answer every pending call with a decision sentinel."""
    parts: list[Part] = []
    for part in message.parts:
        if isinstance(part, ToolCallPart) and part.state == ToolState.INPUT_AVAILABLE:
            output = APPROVAL_YES if decide(part) else APPROVAL_NO
            part = part.model_copy(update={"state": ToolState.OUTPUT_AVAILABLE, "output": output})
        parts.append(part)
    return message.model_copy(update={"parts": parts})


@dataclass(slots=True)
class Conversation:
    messages: list[Message] = field(default_factory=list)
    turns: int = 0

    @property
    def reply(self) -> str:
        if not self.messages or self.messages[-1].role != "assistant":
            return ""
        return self.messages[-1].text()


async def converse(
    prompt: str,
    *,
    settings: Settings,
    decide: Decide,
    mcp_config: McpConfig | None = None,
    model: str | None = None,
    system_prompt: str | None = None,
    model_factory: ModelFactory | None = None,
) -> Conversation:
    """Run turns until the model stops proposing calls or the cap is reached."""
    factory = model_factory or build_model
    conversation = Conversation(
        messages=[Message(role="user", parts=[TextPart(text=prompt)])]
    )
    assistant: Message | None = None
    while conversation.turns < settings.max_tool_round_trips:
        request = TurnRequest(
            messages=conversation.messages,
            mcp_config=mcp_config,
            model=model,
            system_prompt=system_prompt,
        )
        recorder = ChunkRecorder()
        await run_turn(request, recorder, settings=settings, model_factory=factory)
        conversation.turns += 1
        assistant = assemble_message(recorder.chunks, assistant)
        conversation.messages = [*conversation.messages[:1], assistant]
        if not pending_tool_calls(assistant):
            break
        if conversation.turns >= settings.max_tool_round_trips:
            # No turn is left to carry out a decision, so none is asked for
            logger.warning(
                "Tool round-trip cap of %d reached with calls still pending",
                settings.max_tool_round_trips,
            )
            break
        assistant = record_decisions(assistant, decide)
        conversation.messages = [*conversation.messages[:1], assistant]
    return conversation
