"""Human-in-the-loop approval gate for proposed tool calls."""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from agentx.chat.messages import Message, ToolCallPart, ToolState
from agentx.chat.stream import ChunkWriter
from agentx.mcp.catalog import namespaced_name
from agentx.mcp.connector import Connection
from agentx.mcp.dispatcher import dispatch

logger = logging.getLogger(__name__)

APPROVAL_YES = "Yes, confirmed."
APPROVAL_NO = "No, denied."
DENIAL_MESSAGE = "Error: User denied access to tool execution"


def _decision(part: ToolCallPart) -> str | None:
    if part.provider_executed:
        return None
    if part.state != ToolState.OUTPUT_AVAILABLE:
        return None
    if part.output == APPROVAL_YES or part.output == APPROVAL_NO:
        return part.output
    return None


def _arguments(part: ToolCallPart) -> dict[str, Any]:
    return dict(part.input) if isinstance(part.input, dict) else {}


def pending_tool_calls(message: Message) -> list[ToolCallPart]:
    """Tool parts still waiting for the user's decision."""
    return [part for part in message.tool_parts() if part.state == ToolState.INPUT_AVAILABLE]


def all_tool_names(connections: Sequence[Connection]) -> list[str]:
    """Every namespaced tool name; all of them require confirmation."""
    return [namespaced_name(conn.name, tool) for conn in connections for tool in conn.tools]


async def process_tool_calls(
    messages: Sequence[Message],
    writer: ChunkWriter,
    connections: Sequence[Connection],
) -> list[Message]:
    """Resolve decided tool calls in the last message.

    An approved call is dispatched and its output replaces the sentinel; a
    denied call gets the denial text and never reaches a provider. Each
    resolution is written to `writer` as soon as it is known. The returned
    transcript is a new list; the input and its messages are left untouched.
    """
    if not messages or not messages[-1].parts:
        return list(messages)
    last = messages[-1]

    outputs: dict[int, str] = {}
    approved: dict[int, ToolCallPart] = {}
    for index, part in enumerate(last.parts):
        if not isinstance(part, ToolCallPart):
            continue
        decision = _decision(part)
        if decision == APPROVAL_NO:
            logger.info("Tool %s denied by user", part.tool_name)
            outputs[index] = DENIAL_MESSAGE
            writer.write(
                {
                    "type": "tool-output-available",
                    "toolCallId": part.tool_call_id,
                    "output": DENIAL_MESSAGE,
                    "providerExecuted": True,
                }
            )
        elif decision == APPROVAL_YES:
            approved[index] = part

    if approved:
        async def _resolve(index: int, part: ToolCallPart) -> None:
            output = await dispatch(connections, part.tool_name, _arguments(part))
            outputs[index] = output
            writer.write(
                {
                    "type": "tool-output-available",
                    "toolCallId": part.tool_call_id,
                    "output": output,
                    "providerExecuted": True,
                }
            )

        tasks = [
            asyncio.create_task(_resolve(index, part), name=f"dispatch:{part.tool_name}")
            for index, part in approved.items()
        ]
        try:
            await asyncio.wait(tasks)
        except asyncio.CancelledError:
            # Issued calls have side effects on the provider; let them land
            await asyncio.wait(tasks)
            raise
        for task in tasks:
            # dispatch converts tool failures to text; anything left is a bug
            if (exc := task.exception()) is not None:
                raise exc

    if not outputs:
        return list(messages)

    parts = [
        part.model_copy(update={"output": outputs[index], "provider_executed": True})
        if index in outputs
        else part
        for index, part in enumerate(last.parts)
    ]
    return [*messages[:-1], last.model_copy(update={"parts": parts})]
