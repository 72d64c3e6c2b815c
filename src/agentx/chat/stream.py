"""UI message stream: chunk writer and server-sent-events framing."""

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

Chunk = dict[str, Any]

UI_MESSAGE_STREAM_HEADERS = {
    "x-vercel-ai-ui-message-stream": "v1",
    "cache-control": "no-cache",
    "connection": "keep-alive",
    "x-accel-buffering": "no",
}
SSE_DONE = "data: [DONE]\n\n"


class ChunkWriter(Protocol):
    def write(self, chunk: Chunk) -> None: ...


def encode_sse(chunk: Chunk) -> str:
    return f"data: {json.dumps(chunk, ensure_ascii=False, separators=(',', ':'))}\n\n"


@dataclass(slots=True)
class _Failed:
    error: BaseException


_DONE = object()


class UIMessageStreamWriter:
    """Queue-backed writer; producers `write`, one consumer iterates `chunks()`."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._finished = False
        self.written = 0

    def write(self, chunk: Chunk) -> None:
        if self._finished:
            raise RuntimeError("stream already finished")
        self.written += 1
        self._queue.put_nowait(chunk)

    async def merge(self, chunks: AsyncIterator[Chunk]) -> None:
        async for chunk in chunks:
            self.write(chunk)

    def close(self) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(_DONE)

    def fail(self, error: BaseException) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(_Failed(error))

    async def chunks(self) -> AsyncIterator[Chunk]:
        """Yield chunks until closed; re-raise the producer's failure, if any."""
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            if isinstance(item, _Failed):
                raise item.error
            yield item  # type: ignore[misc]


class ChunkRecorder:
    """Writer stand-in that only records chunks, for callers without a live stream."""

    def __init__(self) -> None:
        self.chunks: list[Chunk] = []

    def write(self, chunk: Chunk) -> None:
        self.chunks.append(chunk)
