"""Streaming adapter for OpenAI-compatible chat completions endpoints."""

import json
import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from agentx.chat.messages import (
    Message,
    OtherPart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolState,
)
from agentx.errors import StreamFailure
from agentx.ids import short_id
from agentx.mcp.catalog import ToolCatalogEntry
from agentx.mcp.schema import check_arguments
from agentx.providers.base import ModelRequest

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}
_THOUGHT_OPEN = "<thought>"
_THOUGHT_CLOSE = "</thought>"


def _coerce_text(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        chunks: list[str] = []
        for item in value:
            if isinstance(item, str):
                chunks.append(item)
            elif isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    chunks.append(text)
        return "".join(chunks)
    return ""


def _tool_output_text(part: ToolCallPart) -> str:
    if part.state == ToolState.OUTPUT_ERROR:
        return part.error_text or "Tool execution failed"
    if isinstance(part.output, str):
        return part.output
    return json.dumps(part.output, ensure_ascii=False, default=str)


def _image_url(part: object) -> str | None:
    if not isinstance(part, OtherPart) or part.type != "file":
        return None
    extra = part.model_extra or {}
    if not str(extra.get("mediaType", "")).startswith("image/"):
        return None
    url = extra.get("url")
    return url if isinstance(url, str) and url else None


def _user_content(message: Message) -> str | list[dict[str, Any]]:
    images = [url for url in map(_image_url, message.parts) if url]
    text = message.text()
    if not images:
        return text
    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})
    for url in images:
        content.append({"type": "image_url", "image_url": {"url": url}})
    return content


def to_chat_messages(
    messages: Sequence[Message], system: str | None = None
) -> list[dict[str, Any]]:
    """Convert the UI transcript to chat-completions messages.

    Resolved tool parts become an assistant `tool_calls` entry followed by a
    `tool` message; tool parts still awaiting a decision are dropped.
    """
    converted: list[dict[str, Any]] = []
    if system:
        converted.append({"role": "system", "content": system})
    for message in messages:
        if message.role == "system":
            converted.append({"role": "system", "content": message.text()})
        elif message.role == "user":
            converted.append({"role": "user", "content": _user_content(message)})
        else:
            converted.extend(_assistant_messages(message))
    return converted


def _assistant_messages(message: Message) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    text: list[str] = []
    calls: list[dict[str, Any]] = []
    results: list[dict[str, Any]] = []

    def flush() -> None:
        if not text and not calls:
            return
        entry: dict[str, Any] = {"role": "assistant", "content": "".join(text) or None}
        if calls:
            entry["tool_calls"] = list(calls)
        out.append(entry)
        out.extend(results)
        text.clear()
        calls.clear()
        results.clear()

    for part in message.parts:
        if isinstance(part, TextPart):
            # Text after tool results belongs to the next step
            if calls:
                flush()
            text.append(part.text)
        elif isinstance(part, ToolCallPart):
            if not part.resolved:
                continue
            calls.append(
                {
                    "id": part.tool_call_id,
                    "type": "function",
                    "function": {
                        "name": part.tool_name,
                        "arguments": json.dumps(
                            part.input if isinstance(part.input, dict) else {},
                            ensure_ascii=False,
                        ),
                    },
                }
            )
            results.append(
                {
                    "role": "tool",
                    "tool_call_id": part.tool_call_id,
                    "content": _tool_output_text(part),
                }
            )
        elif isinstance(part, ReasoningPart):
            continue
        elif part.type == "step-start":
            flush()
    flush()
    return out


def to_tools(tools: Mapping[str, ToolCatalogEntry]) -> list[dict[str, Any]] | None:
    normalized: list[dict[str, Any]] = []
    for entry in tools.values():
        function: dict[str, Any] = {"name": entry.name, "parameters": entry.parameters}
        if entry.description:
            function["description"] = entry.description
        normalized.append({"type": "function", "function": function})
    return normalized or None


@dataclass(slots=True)
class _PendingCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(slots=True)
class _StepState:
    """Open text/reasoning blocks and tool-call deltas for one streamed step."""

    text_id: str | None = None
    reasoning_id: str | None = None
    in_thought: bool = False
    calls: dict[int, _PendingCall] = field(default_factory=dict)

    def text(self, delta: str) -> list[dict[str, Any]]:
        chunks = self.end_reasoning()
        if self.text_id is None:
            self.text_id = short_id("txt")
            chunks.append({"type": "text-start", "id": self.text_id})
        chunks.append({"type": "text-delta", "id": self.text_id, "delta": delta})
        return chunks

    def reasoning(self, delta: str) -> list[dict[str, Any]]:
        chunks = self.end_text()
        if self.reasoning_id is None:
            self.reasoning_id = short_id("rsn")
            chunks.append({"type": "reasoning-start", "id": self.reasoning_id})
        chunks.append({"type": "reasoning-delta", "id": self.reasoning_id, "delta": delta})
        return chunks

    def content(self, delta: str) -> list[dict[str, Any]]:
        """Route content, splitting inline `<thought>` sections into reasoning."""
        chunks: list[dict[str, Any]] = []
        rest = delta
        while rest:
            marker = _THOUGHT_CLOSE if self.in_thought else _THOUGHT_OPEN
            head, found, rest = rest.partition(marker)
            if head:
                chunks.extend(self.reasoning(head) if self.in_thought else self.text(head))
            if not found:
                break
            self.in_thought = not self.in_thought
        return chunks

    def end_text(self) -> list[dict[str, Any]]:
        if self.text_id is None:
            return []
        chunk = {"type": "text-end", "id": self.text_id}
        self.text_id = None
        return [chunk]

    def end_reasoning(self) -> list[dict[str, Any]]:
        if self.reasoning_id is None:
            return []
        chunk = {"type": "reasoning-end", "id": self.reasoning_id}
        self.reasoning_id = None
        return [chunk]

    def tool_delta(self, raw: dict[str, Any]) -> None:
        index = raw.get("index", len(self.calls))
        pending = self.calls.setdefault(int(index), _PendingCall())
        if raw.get("id"):
            pending.id = str(raw["id"])
        fn = raw.get("function")
        if isinstance(fn, dict):
            if fn.get("name"):
                pending.name += str(fn["name"])
            if fn.get("arguments"):
                args = fn["arguments"]
                pending.arguments += args if isinstance(args, str) else json.dumps(args)


def proposed_call_chunk(
    call: _PendingCall, tools: Mapping[str, ToolCatalogEntry]
) -> dict[str, Any]:
    """Validate one aggregated call against the catalog."""
    call_id = call.id or short_id("call")
    error: str | None = None
    arguments: Any = {}
    try:
        arguments = json.loads(call.arguments) if call.arguments.strip() else {}
    except json.JSONDecodeError as exc:
        arguments = call.arguments
        error = f"Invalid JSON arguments: {exc.msg}"
    entry = tools.get(call.name)
    if error is None and entry is None:
        error = f"Model tried to call unavailable tool '{call.name}'"
    if error is None and not isinstance(arguments, dict):
        error = "Tool arguments must be a JSON object"
    if error is None and entry is not None:
        error = check_arguments(entry.validator, arguments)
    if error is not None:
        return {
            "type": "tool-input-error",
            "toolCallId": call_id,
            "toolName": call.name,
            "input": arguments,
            "errorText": error,
        }
    return {
        "type": "tool-input-available",
        "toolCallId": call_id,
        "toolName": call.name,
        "input": arguments,
    }


class OpenAICompatibleModel:
    def __init__(
        self,
        model_id: str,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: int = 120,
        thinking_budget: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.thinking_budget = thinking_budget
        self._transport = transport

    def _body(self, request: ModelRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model_id,
            "messages": to_chat_messages(request.messages, request.system),
            "stream": True,
        }
        tools = to_tools(request.tools)
        if tools is not None:
            body["tools"] = tools
        if self.thinking_budget:
            body["extra_body"] = {
                "google": {
                    "thinking_config": {
                        "thinking_budget": self.thinking_budget,
                        "include_thoughts": True,
                    }
                }
            }
        return body

    async def _events(self, body: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "text/event-stream",
        }
        endpoint = f"{self.base_url}/chat/completions"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                async with client.stream("POST", endpoint, headers=headers, json=body) as response:
                    if response.status_code >= 400:
                        detail = (await response.aread()).decode("utf-8", errors="replace")[:500]
                        logger.warning(
                            "Model API error %s for %s: %s",
                            response.status_code,
                            self.model_id,
                            detail[:240],
                        )
                        raise StreamFailure(
                            f"model request failed with status {response.status_code}",
                            status_code=response.status_code,
                            retryable=response.status_code in _RETRYABLE_STATUS,
                        )
                    async for raw in response.aiter_lines():
                        line = raw.strip()
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:") :].strip()
                        if data == "[DONE]":
                            break
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        if isinstance(event, dict):
                            yield event
        except httpx.TimeoutException as exc:
            raise StreamFailure(f"model stream timed out after {self.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise StreamFailure(f"model stream failed: {exc}") from exc

    async def stream(self, request: ModelRequest) -> AsyncGenerator[dict[str, Any], None]:
        """Stream one step.

        No tool carries an executor, so the model never gets tool results
        within a turn: a step either answers or proposes calls for approval.
        """
        started = time.perf_counter()
        state = _StepState()
        finish_reason = "stop"
        usage: dict[str, Any] | None = None
        yield {"type": "start-step"}
        async for event in self._events(self._body(request)):
            if isinstance(event.get("error"), dict):
                message = str(event["error"].get("message") or "model stream error")
                raise StreamFailure(message)
            if isinstance(event.get("usage"), dict):
                usage = event["usage"]
            choices = event.get("choices")
            if not isinstance(choices, list) or not choices:
                continue
            choice = choices[0] if isinstance(choices[0], dict) else {}
            delta = choice.get("delta")
            if isinstance(delta, dict):
                reasoning = _coerce_text(delta.get("reasoning_content") or delta.get("reasoning"))
                if reasoning:
                    for chunk in state.reasoning(reasoning):
                        yield chunk
                content = _coerce_text(delta.get("content"))
                if content:
                    for chunk in state.content(content):
                        yield chunk
                tool_calls = delta.get("tool_calls")
                if isinstance(tool_calls, list):
                    for raw in tool_calls:
                        if isinstance(raw, dict):
                            state.tool_delta(raw)
            if choice.get("finish_reason"):
                finish_reason = str(choice["finish_reason"])
        for chunk in [*state.end_reasoning(), *state.end_text()]:
            yield chunk
        for index in sorted(state.calls):
            call = state.calls[index]
            if not call.name:
                continue
            yield proposed_call_chunk(call, request.tools)
        logger.info(
            "Model %s step finished: reason=%s calls=%d duration_ms=%d usage=%s",
            self.model_id,
            finish_reason,
            len(state.calls),
            int((time.perf_counter() - started) * 1000),
            json.dumps(usage) if usage else "-",
        )
        yield {"type": "finish-step"}
