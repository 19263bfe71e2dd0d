"""Normalized streaming: one ordered chunk sequence with a single terminal chunk.

Vendor streams arrive as server-sent-event lines. ``normalize_sse`` turns them
into ``StreamChunk`` values through a per-vendor ``decode_event`` hook, and
``ChunkStream`` carries those chunks from one background producer task to one
consumer through a bounded queue.

Whatever happens upstream, a ``ChunkStream`` always ends with exactly one
chunk whose ``finished`` flag is set. Failures are reported on
``ChunkStream.error``; consumers that only look at chunks still see the
terminal chunk and never wait forever.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Any

import httpx
from loguru import logger

from chatdelta.errors import ClientError, stream_read_error
from chatdelta.response import AiResponse, ResponseMetadata

DONE_SENTINEL = "[DONE]"
DEFAULT_STREAM_BUFFER = 10


@dataclass(frozen=True)
class StreamChunk:
    content: str
    finished: bool = False
    metadata: dict[str, Any] | None = None


def terminal_chunk(content: str = "", metadata: dict[str, Any] | None = None) -> StreamChunk:
    return StreamChunk(content=content, finished=True, metadata=metadata)


def metadata_to_dict(metadata: ResponseMetadata) -> dict[str, Any] | None:
    values = {k: v for k, v in asdict(metadata).items() if v is not None}
    return values or None


async def normalize_sse(
    lines: AsyncIterator[str],
    decode_event: Callable[[dict], StreamChunk | None],
    *,
    sentinel: str = DONE_SENTINEL,
) -> AsyncIterator[StreamChunk]:
    """Decode ``data:`` frames into chunks, stopping at the first terminal one.

    Frames that are not valid JSON are skipped. Transport failures while
    reading become a ``stream`` error.
    """
    try:
        async for line in lines:
            if not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if not data:
                continue
            if data == sentinel:
                yield terminal_chunk()
                return

            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed stream frame: {data[:200]}")
                continue
            if not isinstance(payload, dict):
                continue

            chunk = decode_event(payload)
            if chunk is None:
                continue
            yield chunk
            if chunk.finished:
                return
    except (httpx.HTTPError, OSError) as exc:
        raise stream_read_error(exc) from exc


async def _single_response(producer: Callable[[], Awaitable[AiResponse]]) -> AsyncIterator[StreamChunk]:
    response = await producer()
    yield terminal_chunk(response.content, metadata_to_dict(response.metadata))


class ChunkStream:
    """Bounded, closable, ordered channel of ``StreamChunk`` values.

    The producer blocks while the buffer is full. A consumer that stops
    before the terminal chunk must call ``aclose()``, or iterate inside
    ``async with stream:``, otherwise the producer task never finishes.
    """

    def __init__(self, maxsize: int = DEFAULT_STREAM_BUFFER):
        self._queue: asyncio.Queue[StreamChunk] = asyncio.Queue(maxsize=max(1, maxsize))
        self._task: asyncio.Task | None = None
        self._done = False
        self.error: ClientError | None = None

    @classmethod
    def single(cls, producer: Callable[[], Awaitable[AiResponse]]) -> ChunkStream:
        """Stream for a client that cannot stream: one call, one terminal chunk."""
        return cls(maxsize=1).start(_single_response(producer))

    @property
    def closed(self) -> bool:
        return self._done

    def start(
        self,
        source: AsyncIterable[StreamChunk],
        *,
        on_close: Callable[[], Awaitable[Any]] | None = None,
    ) -> ChunkStream:
        if self._task is not None:
            raise RuntimeError("ChunkStream already started")
        self._task = asyncio.create_task(self._pump(source, on_close))
        return self

    async def _pump(
        self,
        source: AsyncIterable[StreamChunk],
        on_close: Callable[[], Awaitable[Any]] | None,
    ) -> None:
        try:
            try:
                async for chunk in source:
                    await self._queue.put(chunk)
                    if chunk.finished:
                        return
                logger.debug("Chunk source ended without a terminal chunk")
            except ClientError as exc:
                self.error = exc
            except Exception as exc:
                self.error = stream_read_error(exc)
            if self.error is not None:
                logger.debug(f"Stream failed: {self.error}")
            await self._queue.put(terminal_chunk())
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            if on_close is not None:
                await on_close()

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._done:
            raise StopAsyncIteration
        chunk = await self._queue.get()
        if chunk.finished:
            self._done = True
        return chunk

    async def aclose(self) -> None:
        self._done = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


async def _iterate(chunks: AsyncIterable[StreamChunk] | Iterable[StreamChunk]) -> AsyncIterator[StreamChunk]:
    if hasattr(chunks, "__aiter__"):
        async for chunk in chunks:
            yield chunk
    else:
        for chunk in chunks:
            yield chunk


async def merge_stream_chunks(chunks: AsyncIterable[StreamChunk] | Iterable[StreamChunk]) -> str:
    """Concatenate chunk content up to the terminal chunk.

    When ``chunks`` is a ``ChunkStream`` that failed, its ``error`` is raised
    after the terminal chunk is consumed instead of returning partial text.
    """
    parts: list[str] = []
    async for chunk in _iterate(chunks):
        parts.append(chunk.content)
        if chunk.finished:
            break

    error = getattr(chunks, "error", None)
    if error is not None:
        raise error
    return "".join(parts)


async def stream_to_string(client: Any, prompt: str, *, token=None) -> str:
    if not client.supports_streaming():
        return await client.send_prompt(prompt, token=token)
    chunks = await client.stream_prompt(prompt, token=token)
    return await merge_stream_chunks(chunks)


async def stream_conversation_to_string(client: Any, conversation, *, token=None) -> str:
    if not client.supports_streaming():
        return await client.send_conversation(conversation, token=token)
    chunks = await client.stream_conversation(conversation, token=token)
    return await merge_stream_chunks(chunks)
