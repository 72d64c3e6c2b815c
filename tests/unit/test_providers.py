import json

import httpx
import pytest

from agentx.chat.messages import Message
from agentx.config import get_settings
from agentx.errors import ConfigError, StreamFailure
from agentx.mcp.registry import merge_catalog
from agentx.providers.base import ModelRequest
from agentx.providers.factory import build_model, supports_thinking
from agentx.providers.openai_compat import OpenAICompatibleModel, to_chat_messages


def _sse(*events: dict) -> str:
    lines = [f"data: {json.dumps(event)}" for event in events]
    lines.append("data: [DONE]")
    return "\n\n".join(lines) + "\n\n"


def _delta(**delta) -> dict:
    return {"choices": [{"index": 0, "delta": delta}]}


def _user(text: str) -> Message:
    return Message.model_validate({"role": "user", "parts": [{"type": "text", "text": text}]})


async def _collect(model, request) -> list[dict]:
    return [chunk async for chunk in model.stream(request)]


@pytest.mark.asyncio
async def test_streams_text_chunks() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            text=_sse(_delta(role="assistant", content="Hel"), _delta(content="lo")),
            headers={"content-type": "text/event-stream"},
        )

    model = OpenAICompatibleModel(
        "openai/gpt-4o",
        base_url="https://gateway.test/v1/",
        api_key="key-1",
        transport=httpx.MockTransport(handler),
    )
    chunks = await _collect(model, ModelRequest(messages=[_user("hi")], system="Be brief."))

    assert seen["url"] == "https://gateway.test/v1/chat/completions"
    assert seen["auth"] == "Bearer key-1"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"][0] == {"role": "system", "content": "Be brief."}
    assert "tools" not in seen["body"]
    kinds = [chunk["type"] for chunk in chunks]
    assert kinds == [
        "start-step",
        "text-start",
        "text-delta",
        "text-delta",
        "text-end",
        "finish-step",
    ]
    assert "".join(c["delta"] for c in chunks if c["type"] == "text-delta") == "Hello"


@pytest.mark.asyncio
async def test_aggregates_tool_call_deltas(connection_factory) -> None:
    catalog = merge_catalog([connection_factory("fs", {"readFile": "hello"})])

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["tools"][0]["function"]["name"] == "fs__readFile"
        return httpx.Response(
            200,
            text=_sse(
                _delta(
                    tool_calls=[
                        {
                            "index": 0,
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "fs__readFile", "arguments": '{"pa'},
                        }
                    ]
                ),
                _delta(
                    tool_calls=[{"index": 0, "function": {"arguments": 'th": "/tmp/a.txt"}'}}]
                ),
                {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
            ),
        )

    model = OpenAICompatibleModel(
        "m", base_url="https://x.test", api_key="k", transport=httpx.MockTransport(handler)
    )
    chunks = await _collect(model, ModelRequest(messages=[_user("read")], tools=catalog))

    assert chunks[-2] == {
        "type": "tool-input-available",
        "toolCallId": "call_1",
        "toolName": "fs__readFile",
        "input": {"path": "/tmp/a.txt"},
    }
    assert chunks[-1] == {"type": "finish-step"}


@pytest.mark.asyncio
async def test_invalid_tool_input_becomes_input_error(connection_factory) -> None:
    catalog = merge_catalog([connection_factory("fs", {"readFile": "hello"})])

    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(
            200,
            text=_sse(
                _delta(
                    tool_calls=[
                        {
                            "index": 0,
                            "id": "call_1",
                            "function": {"name": "fs__readFile", "arguments": '{"path": 5}'},
                        },
                        {
                            "index": 1,
                            "id": "call_2",
                            "function": {"name": "fs__missing", "arguments": "{}"},
                        },
                    ]
                )
            ),
        )

    model = OpenAICompatibleModel(
        "m", base_url="https://x.test", api_key="k", transport=httpx.MockTransport(handler)
    )
    chunks = await _collect(model, ModelRequest(messages=[_user("read")], tools=catalog))
    errors = [chunk for chunk in chunks if chunk["type"] == "tool-input-error"]

    assert [chunk["toolCallId"] for chunk in errors] == ["call_1", "call_2"]
    assert "path" in errors[0]["errorText"]
    assert "unavailable tool" in errors[1]["errorText"]


@pytest.mark.asyncio
async def test_reasoning_and_inline_thoughts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        thinking = body["extra_body"]["google"]["thinking_config"]
        assert thinking == {"thinking_budget": 8192, "include_thoughts": True}
        return httpx.Response(
            200,
            text=_sse(
                _delta(reasoning_content="plan"),
                _delta(content="<thought>more</thought>Answer"),
            ),
        )

    model = OpenAICompatibleModel(
        "gemini-2.5-flash",
        base_url="https://g.test",
        api_key="k",
        thinking_budget=8192,
        transport=httpx.MockTransport(handler),
    )
    chunks = await _collect(model, ModelRequest(messages=[_user("why")]))
    reasoning = "".join(c["delta"] for c in chunks if c["type"] == "reasoning-delta")
    text = "".join(c["delta"] for c in chunks if c["type"] == "text-delta")
    assert reasoning == "planmore"
    assert text == "Answer"


@pytest.mark.asyncio
async def test_http_error_raises_stream_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(429, text="slow down")

    model = OpenAICompatibleModel(
        "m", base_url="https://x.test", api_key="k", transport=httpx.MockTransport(handler)
    )
    with pytest.raises(StreamFailure) as info:
        await _collect(model, ModelRequest(messages=[_user("hi")]))
    assert info.value.status_code == 429
    assert info.value.retryable is True
    assert str(info.value) == "model request failed with status 429"
    assert "slow down" not in str(info.value)


def test_transcript_conversion_keeps_resolved_calls_only() -> None:
    assistant = Message.model_validate(
        {
            "role": "assistant",
            "parts": [
                {"type": "step-start"},
                {"type": "text", "text": "Reading."},
                {
                    "type": "tool-fs__readFile",
                    "toolCallId": "c1",
                    "state": "output-available",
                    "input": {"path": "/tmp/a.txt"},
                    "output": "hello",
                },
                {
                    "type": "tool-fs__readFile",
                    "toolCallId": "c2",
                    "state": "input-available",
                    "input": {"path": "/tmp/b.txt"},
                },
                {"type": "step-start"},
                {"type": "text", "text": "It says hello."},
            ],
        }
    )
    converted = to_chat_messages([_user("read a"), assistant])

    assert converted[0] == {"role": "user", "content": "read a"}
    assert converted[1]["content"] == "Reading."
    assert [call["id"] for call in converted[1]["tool_calls"]] == ["c1"]
    assert converted[2] == {"role": "tool", "tool_call_id": "c1", "content": "hello"}
    assert converted[3] == {"role": "assistant", "content": "It says hello."}


def test_build_model_routes_google_models() -> None:
    settings = get_settings()
    model = build_model("google/gemini-2.5-flash-lite", {"google": "g-key"}, settings)
    assert isinstance(model, OpenAICompatibleModel)
    assert model.model_id == "gemini-2.5-flash-lite"
    assert model.base_url == settings.google_openai_base_url
    assert model.thinking_budget == 8192


def test_build_model_uses_gateway_for_everything_else(monkeypatch) -> None:
    monkeypatch.setenv("AI_GATEWAY_API_KEY", "server-key")
    get_settings.cache_clear()
    settings = get_settings()
    model = build_model("anthropic/claude-sonnet-4", {}, settings)
    assert isinstance(model, OpenAICompatibleModel)
    assert model.model_id == "anthropic/claude-sonnet-4"
    assert model.base_url == settings.ai_gateway_base_url.rstrip("/")
    assert model.thinking_budget is None


def test_build_model_without_key_raises() -> None:
    with pytest.raises(ConfigError):
        build_model("google/gemini-2.5-flash", {}, get_settings())
    with pytest.raises(ConfigError):
        build_model("openai/gpt-4o", {"google": "g-key"}, get_settings())


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("gemini-2.5-flash", True),
        ("gemini-3-pro-preview", True),
        ("gemini-3.0-flash", True),
        ("gemini-2.0-flash", False),
        ("gemini-1.5-flash-003", False),
    ],
)
def test_supports_thinking(name: str, expected: bool) -> None:
    assert supports_thinking(name) is expected
