"""Turn orchestrator: connections, approval gate, model stream, release."""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import aclosing

from pydantic import BaseModel, ConfigDict, Field

from agentx.chat.hitl import process_tool_calls
from agentx.chat.messages import Message
from agentx.chat.stream import Chunk, ChunkWriter, UIMessageStreamWriter
from agentx.config import Settings
from agentx.errors import AgentXError, TurnError, describe_exception
from agentx.ids import short_id
from agentx.logging import bind_turn
from agentx.mcp.config import McpConfig, ProviderConfig
from agentx.mcp.registry import ConnectionRegistry
from agentx.providers.base import LanguageModel, ModelRequest
from agentx.providers.factory import build_model

logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "An error occurred."

ModelFactory = Callable[[str, Mapping[str, str | None], Settings], LanguageModel]

# Strong references for turn tasks; the loop itself only keeps weak ones
_turn_tasks: set[asyncio.Task[None]] = set()


class ApiKeys(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ai_gateway: str | None = Field(default=None, alias="aiGateway")
    google: str | None = None
    openai: str | None = None
    anthropic: str | None = None

    def as_mapping(self) -> dict[str, str | None]:
        return self.model_dump(by_alias=True)


class TurnRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: list[Message] = Field(min_length=1)
    mcp_config: McpConfig | None = Field(default=None, alias="mcpConfig")
    api_keys: ApiKeys = Field(default_factory=ApiKeys, alias="apiKeys")
    model: str | None = None
    system_prompt: str | None = Field(default=None, alias="systemPrompt")

    @property
    def servers(self) -> dict[str, ProviderConfig]:
        return dict(self.mcp_config.servers) if self.mcp_config else {}


def error_text(exc: BaseException) -> str:
    """Client-facing text for a failed turn; internals stay in the logs."""
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    if isinstance(exc, AgentXError):
        return str(exc) or GENERIC_ERROR_TEXT
    return GENERIC_ERROR_TEXT


def _message_id(messages: list[Message]) -> str:
    # Continuing after an approval extends the assistant message already shown
    if messages and messages[-1].role == "assistant":
        return messages[-1].id
    return short_id("msg")


async def run_turn(
    request: TurnRequest,
    writer: ChunkWriter,
    *,
    settings: Settings,
    model_factory: ModelFactory = build_model,
) -> None:
    """Run one conversational turn, writing UI stream chunks to `writer`.

    Connections opened for the turn are closed on every exit path, including
    cancellation and a failing model stream.
    """
    started = time.perf_counter()
    selector = (request.model or "").strip() or settings.default_model
    servers = request.servers
    bind_turn(selector, list(servers))
    logger.info(
        "Turn started: model=%s messages=%d servers=%s",
        selector,
        len(request.messages),
        ", ".join(servers) or "none",
    )
    model = model_factory(selector, request.api_keys.as_mapping(), settings)
    cap = settings.max_tool_round_trips
    if cap < 1:
        raise TurnError(f"tool round-trip cap must be at least 1, got {cap}")

    async with ConnectionRegistry(
        servers,
        connect_timeout_s=settings.mcp_connect_timeout_seconds,
        close_timeout_s=settings.mcp_close_timeout_seconds,
    ) as registry:
        catalog = registry.catalog()
        logger.info("Available tools: %s", ", ".join(catalog) or "none")
        writer.write({"type": "start", "messageId": _message_id(request.messages)})

        messages = list(request.messages)
        if registry.connections:
            messages = await process_tool_calls(messages, writer, registry.connections)

        steps = 0
        model_request = ModelRequest(
            messages=messages,
            tools=catalog,
            system=request.system_prompt or None,
            max_steps=cap,
        )
        async with aclosing(model.stream(model_request)) as chunks:
            async for chunk in chunks:
                writer.write(chunk)
                if chunk.get("type") == "finish-step":
                    steps += 1
                    if steps >= cap:
                        logger.warning("Tool round-trip cap of %d reached; ending turn", cap)
                        break
        writer.write({"type": "finish"})

    logger.info(
        "Turn finished: steps=%d duration_ms=%d",
        steps,
        int((time.perf_counter() - started) * 1000),
    )


async def _produce(
    request: TurnRequest,
    writer: UIMessageStreamWriter,
    settings: Settings,
    model_factory: ModelFactory,
) -> None:
    try:
        await run_turn(request, writer, settings=settings, model_factory=model_factory)
    except asyncio.CancelledError:
        writer.fail(TurnError("turn cancelled"))
        raise
    except Exception as exc:
        logger.error("Turn failed: %s", describe_exception(exc))
        writer.fail(exc)
    else:
        writer.close()


async def stream_turn(
    request: TurnRequest,
    *,
    settings: Settings,
    model_factory: ModelFactory = build_model,
) -> AsyncGenerator[Chunk, None]:
    """Yield the turn's chunks as they are produced.

    A failure before the first chunk is raised to the caller. After that the
    failure becomes a final `error` chunk. Closing this iterator early cancels
    the turn and waits for its connections to be released.
    """
    writer = UIMessageStreamWriter()
    task = asyncio.create_task(
        _produce(request, writer, settings, model_factory), name="chat-turn"
    )
    _turn_tasks.add(task)
    task.add_done_callback(_turn_tasks.discard)
    started = False
    try:
        try:
            async for chunk in writer.chunks():
                started = True
                yield chunk
        except Exception as exc:
            if not started:
                raise
            yield {"type": "error", "errorText": error_text(exc)}
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

