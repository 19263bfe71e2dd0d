from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

from loguru import logger

from chatdelta.cancellation import CancellationToken
from chatdelta.client_config import ClientConfig
from chatdelta.conversation import Conversation, Role
from chatdelta.errors import ClientError, invalid_api_key_error
from chatdelta.response import AiResponse
from chatdelta.retry import execute_with_retry
from chatdelta.streaming import ChunkStream, StreamChunk, normalize_sse


def split_system_messages(
    conversation: Conversation,
    config_system_message: str | None,
) -> tuple[str, list[dict]]:
    """Pull system messages out of a conversation.

    Returns the joined system prompt (config message first) and the remaining
    messages as role/content dicts.
    """
    system_parts: list[str] = []
    if config_system_message:
        system_parts.append(config_system_message)
    messages: list[dict] = []
    for message in conversation:
        if message.role == Role.SYSTEM:
            system_parts.append(message.content)
        else:
            messages.append(message.to_dict())
    return "\n\n".join(system_parts), messages


def error_message_from_body(body: object, fallback: str) -> tuple[str, str | None]:
    """Extract (message, vendor error code) from a vendor error body."""
    if isinstance(body, dict):
        detail = body.get("error", body)
        if isinstance(detail, dict):
            message = detail.get("message") or fallback
            code = detail.get("code") or detail.get("type") or detail.get("status")
            return str(message), str(code) if code is not None else None
    return fallback, None


def parse_retry_after(headers) -> float | None:
    if headers is None:
        return None
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class ProviderBase:
    """Shared implementation of the AIClient protocol.

    Subclasses supply one network attempt each for a full response
    (``_complete``) and for opening an SSE line stream (``_open_stream``),
    plus ``_decode_event`` for stream frames. Retries, prompt wrapping and
    chunk normalization live here.
    """

    display_name = ""

    def __init__(self, api_key: str, model: str, config: ClientConfig | None = None):
        if not api_key:
            raise invalid_api_key_error()
        self._api_key = api_key
        self._model = model
        self._config = config or ClientConfig()

    @property
    def name(self) -> str:
        return self.display_name

    @property
    def model(self) -> str:
        return self._model

    @property
    def config(self) -> ClientConfig:
        return self._config

    def supports_streaming(self) -> bool:
        return True

    def supports_conversations(self) -> bool:
        return True

    async def send_prompt(self, prompt: str, *, token: CancellationToken | None = None) -> str:
        return await self.send_conversation(Conversation.from_prompt(prompt), token=token)

    async def send_prompt_with_metadata(
        self, prompt: str, *, token: CancellationToken | None = None
    ) -> AiResponse:
        return await self.send_conversation_with_metadata(Conversation.from_prompt(prompt), token=token)

    async def send_conversation(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> str:
        response = await self.send_conversation_with_metadata(conversation, token=token)
        return response.content

    async def send_conversation_with_metadata(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> AiResponse:
        return await execute_with_retry(
            self._config.retry_policy(),
            lambda: self._complete(conversation),
            token=token,
        )

    async def stream_prompt(self, prompt: str, *, token: CancellationToken | None = None) -> ChunkStream:
        return await self.stream_conversation(Conversation.from_prompt(prompt), token=token)

    async def stream_conversation(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> ChunkStream:
        if not self.supports_streaming():
            snapshot = conversation.copy()
            return ChunkStream.single(lambda: self.send_conversation_with_metadata(snapshot, token=token))

        stack = AsyncExitStack()
        try:
            lines = await execute_with_retry(
                self._config.retry_policy(),
                lambda: self._open_stream(conversation, stack),
                token=token,
            )
        except BaseException:
            await stack.aclose()
            raise
        logger.debug(f"{self.name} stream opened: model={self._model}, messages={len(conversation)}")
        return ChunkStream().start(normalize_sse(lines, self._decode_event), on_close=stack.aclose)

    async def _complete(self, conversation: Conversation) -> AiResponse:
        raise NotImplementedError

    async def _open_stream(self, conversation: Conversation, stack: AsyncExitStack) -> AsyncIterator[str]:
        raise NotImplementedError

    def _decode_event(self, payload: dict) -> StreamChunk | None:
        raise NotImplementedError

    def _map_error(self, exc: Exception) -> ClientError:
        raise NotImplementedError
