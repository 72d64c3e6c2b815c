"""Chat turn route streaming the UI message protocol."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from agentx.chat.orchestrator import ModelFactory, TurnRequest, error_text, stream_turn
from agentx.chat.stream import SSE_DONE, UI_MESSAGE_STREAM_HEADERS, encode_sse
from agentx.config import get_settings
from agentx.errors import describe_exception
from agentx.providers.factory import build_model

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api-chat"])
_limiter = Limiter(key_func=get_remote_address)


def _chat_limit() -> str:
    return f"{get_settings().rate_limit_chat_per_minute}/minute"


def get_model_factory() -> ModelFactory:
    return build_model


@router.post("/chat", response_model=None)
@_limiter.limit(_chat_limit)
async def chat(
    request: Request,
    body: TurnRequest,
    model_factory: ModelFactory = Depends(get_model_factory),  # noqa: B008
) -> StreamingResponse | JSONResponse:
    del request
    settings = get_settings()
    stream = stream_turn(body, settings=settings, model_factory=model_factory)
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = None
    except Exception as exc:
        logger.error("Chat request failed before streaming: %s", describe_exception(exc))
        return JSONResponse(status_code=500, content={"error": error_text(exc)})

    async def _sse() -> AsyncIterator[str]:
        async with aclosing(stream):
            if first is not None:
                yield encode_sse(first)
            async for chunk in stream:
                yield encode_sse(chunk)
        yield SSE_DONE

    return StreamingResponse(
        _sse(),
        media_type="text/event-stream",
        headers=UI_MESSAGE_STREAM_HEADERS,
    )
