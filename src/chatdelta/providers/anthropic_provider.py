import time
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

import anthropic
from loguru import logger

from chatdelta.client_config import ClientConfig
from chatdelta.conversation import Conversation
from chatdelta.errors import (
    ClientError,
    connection_error,
    json_parse_error,
    missing_field_error,
    status_error,
    timeout_error,
)
from chatdelta.providers.common import (
    ProviderBase,
    elapsed_ms,
    error_message_from_body,
    parse_retry_after,
    split_system_messages,
)
from chatdelta.response import AiResponse, ResponseMetadata
from chatdelta.streaming import StreamChunk, terminal_chunk

DEFAULT_MODEL = "claude-3-haiku-20240307"
# The Messages API requires max_tokens on every request
_DEFAULT_MAX_TOKENS = 1024


class AnthropicProvider(ProviderBase):
    display_name = "Claude"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, config: ClientConfig | None = None):
        super().__init__(api_key, model or DEFAULT_MODEL, config)
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            max_retries=0,
        )

    def _request_kwargs(self, conversation: Conversation) -> dict:
        system_prompt, messages = split_system_messages(conversation, self._config.system_message)
        kwargs: dict = dict(
            model=self._model,
            max_tokens=self._config.max_tokens or _DEFAULT_MAX_TOKENS,
            messages=messages,
        )
        if system_prompt:
            kwargs["system"] = system_prompt
        if self._config.temperature is not None:
            kwargs["temperature"] = self._config.temperature
        if self._config.top_p is not None:
            kwargs["top_p"] = self._config.top_p
        return kwargs

    async def _complete(self, conversation: Conversation) -> AiResponse:
        kwargs = self._request_kwargs(conversation)
        logger.debug(
            f"API request: provider=anthropic, model={self._model}, "
            f"max_tokens={kwargs['max_tokens']}, messages={len(kwargs['messages'])}"
        )
        started = time.perf_counter()
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise self._map_error(exc) from exc

        if not response.content:
            raise missing_field_error("content")
        text = "".join(block.text for block in response.content if block.type == "text")
        usage = response.usage
        metadata = ResponseMetadata(
            model_used=response.model,
            prompt_tokens=usage.input_tokens if usage else None,
            completion_tokens=usage.output_tokens if usage else None,
            total_tokens=(usage.input_tokens + usage.output_tokens) if usage else None,
            finish_reason=response.stop_reason,
            request_id=response.id,
            latency_ms=elapsed_ms(started),
        )
        logger.debug(
            f"API response: provider=anthropic, stop_reason={response.stop_reason}, "
            f"input_tokens={metadata.prompt_tokens}, output_tokens={metadata.completion_tokens}"
        )
        return AiResponse(text, metadata)

    async def _open_stream(self, conversation: Conversation, stack: AsyncExitStack) -> AsyncIterator[str]:
        kwargs = self._request_kwargs(conversation)
        try:
            response = await stack.enter_async_context(
                self._client.messages.with_streaming_response.create(stream=True, **kwargs)
            )
        except anthropic.APIError as exc:
            raise self._map_error(exc) from exc
        return response.iter_lines()

    def _decode_event(self, payload: dict) -> StreamChunk | None:
        event_type = payload.get("type")
        if event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                return StreamChunk(delta["text"])
            return None
        if event_type == "message_stop":
            return terminal_chunk()
        return None

    def _map_error(self, exc: Exception) -> ClientError:
        if isinstance(exc, anthropic.APITimeoutError):
            return timeout_error(self._config.timeout)
        if isinstance(exc, anthropic.APIConnectionError):
            return connection_error(exc)
        if isinstance(exc, anthropic.APIStatusError):
            message, code = error_message_from_body(exc.body, exc.message)
            return status_error(
                exc.status_code,
                message,
                model=self._model,
                service="Claude API",
                error_code=code,
                retry_after=parse_retry_after(exc.response.headers),
            )
        if isinstance(exc, anthropic.APIResponseValidationError):
            return json_parse_error(exc)
        return connection_error(exc)
