import time
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack

import openai
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
from chatdelta.providers.common import ProviderBase, elapsed_ms, error_message_from_body, parse_retry_after
from chatdelta.response import AiResponse, ResponseMetadata
from chatdelta.streaming import StreamChunk, terminal_chunk

DEFAULT_MODEL = "gpt-3.5-turbo"


def _to_openai_messages(system_message: str | None, conversation: Conversation) -> list[dict]:
    """Convert a conversation to OpenAI chat format, config system prompt first."""
    out: list[dict] = []
    if system_message:
        out.append({"role": "system", "content": system_message})
    out.extend(conversation.to_dicts())
    return out


class OpenAIProvider(ProviderBase):
    display_name = "OpenAI"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, config: ClientConfig | None = None):
        super().__init__(api_key, model or DEFAULT_MODEL, config)
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            max_retries=0,
        )

    def _request_kwargs(self, conversation: Conversation) -> dict:
        kwargs: dict = dict(
            model=self._model,
            messages=_to_openai_messages(self._config.system_message, conversation),
        )
        optional = {
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "top_p": self._config.top_p,
            "frequency_penalty": self._config.frequency_penalty,
            "presence_penalty": self._config.presence_penalty,
        }
        kwargs.update({k: v for k, v in optional.items() if v is not None})
        return kwargs

    async def _complete(self, conversation: Conversation) -> AiResponse:
        kwargs = self._request_kwargs(conversation)
        logger.debug(f"API request: provider=openai, model={self._model}, messages={len(kwargs['messages'])}")
        started = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as exc:
            raise self._map_error(exc) from exc

        if not response.choices:
            raise missing_field_error("choices")
        choice = response.choices[0]
        usage = response.usage
        metadata = ResponseMetadata(
            model_used=response.model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
            finish_reason=choice.finish_reason,
            request_id=response.id,
            latency_ms=elapsed_ms(started),
        )
        text = choice.message.content or ""
        logger.debug(f"API response: provider=openai, finish_reason={choice.finish_reason}, text_len={len(text)}")
        return AiResponse(text, metadata)

    async def _open_stream(self, conversation: Conversation, stack: AsyncExitStack) -> AsyncIterator[str]:
        kwargs = self._request_kwargs(conversation)
        try:
            response = await stack.enter_async_context(
                self._client.chat.completions.with_streaming_response.create(stream=True, **kwargs)
            )
        except openai.APIError as exc:
            raise self._map_error(exc) from exc
        return response.iter_lines()

    def _decode_event(self, payload: dict) -> StreamChunk | None:
        choices = payload.get("choices") or []
        if not choices:
            return None
        choice = choices[0]
        content = (choice.get("delta") or {}).get("content") or ""
        finish_reason = choice.get("finish_reason")
        if finish_reason:
            return terminal_chunk(content, {"finish_reason": finish_reason})
        if not content:
            return None
        return StreamChunk(content)

    def _map_error(self, exc: Exception) -> ClientError:
        # APITimeoutError subclasses APIConnectionError
        if isinstance(exc, openai.APITimeoutError):
            return timeout_error(self._config.timeout)
        if isinstance(exc, openai.APIConnectionError):
            return connection_error(exc)
        if isinstance(exc, openai.APIStatusError):
            message, code = error_message_from_body(exc.body, exc.message)
            return status_error(
                exc.status_code,
                message,
                model=self._model,
                service="OpenAI API",
                error_code=code,
                retry_after=parse_retry_after(exc.response.headers),
            )
        if isinstance(exc, openai.APIResponseValidationError):
            return json_parse_error(exc)
        return connection_error(exc)
