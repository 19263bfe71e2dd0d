import socket
import time

import httpx
from loguru import logger

from chatdelta.client_config import ClientConfig
from chatdelta.conversation import Conversation, Role
from chatdelta.errors import (
    ClientError,
    connection_error,
    dns_error,
    invalid_api_key_error,
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

DEFAULT_MODEL = "gemini-1.5-flash"
_DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _to_gemini_payload(conversation: Conversation, config: ClientConfig) -> dict:
    system_prompt, messages = split_system_messages(conversation, config.system_message)
    contents = [
        {
            "role": "model" if m["role"] == Role.ASSISTANT.value else m["role"],
            "parts": [{"text": m["content"]}],
        }
        for m in messages
    ]
    payload: dict = {"contents": contents}
    if system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

    generation_config = {
        key: value
        for key, value in (
            ("temperature", config.temperature),
            ("topP", config.top_p),
            ("maxOutputTokens", config.max_tokens),
        )
        if value is not None
    }
    if generation_config:
        payload["generationConfig"] = generation_config
    return payload


def _is_dns_failure(exc: BaseException) -> bool:
    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, socket.gaierror):
            return True
        seen = seen.__cause__ or seen.__context__
    text = str(exc).lower()
    return "name or service not known" in text or "nodename nor servname" in text or "getaddrinfo" in text


class GeminiProvider(ProviderBase):
    """Gemini over plain HTTP. Streams are served as one terminal chunk."""

    display_name = "Gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(api_key, model or DEFAULT_MODEL, config)
        self._base_url = (self._config.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._transport = transport

    def supports_streaming(self) -> bool:
        return False

    async def _complete(self, conversation: Conversation) -> AiResponse:
        payload = _to_gemini_payload(conversation, self._config)
        url = f"{self._base_url}/models/{self._model}:generateContent"
        logger.debug(f"API request: provider=gemini, model={self._model}, contents={len(payload['contents'])}")
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self._api_key}, json=payload)
        except httpx.HTTPError as exc:
            raise self._map_error(exc) from exc

        if response.status_code != 200:
            raise self._status_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise json_parse_error(exc) from exc

        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise missing_field_error("candidates")
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)

        usage = data.get("usageMetadata") or {}
        metadata = ResponseMetadata(
            model_used=data.get("modelVersion") or self._model,
            prompt_tokens=usage.get("promptTokenCount"),
            completion_tokens=usage.get("candidatesTokenCount"),
            total_tokens=usage.get("totalTokenCount"),
            finish_reason=candidate.get("finishReason"),
            latency_ms=elapsed_ms(started),
        )
        logger.debug(f"API response: provider=gemini, finish_reason={metadata.finish_reason}, text_len={len(text)}")
        return AiResponse(text, metadata)

    def _status_error(self, response: httpx.Response) -> ClientError:
        try:
            message, code = error_message_from_body(response.json(), response.text)
        except ValueError:
            # Plain-text bodies from proxies; the status still decides the kind
            message, code = response.text, None
        # Gemini reports a bad key as 400 INVALID_ARGUMENT
        if response.status_code in (400, 401) and "api key" in message.lower():
            return invalid_api_key_error()
        return status_error(
            response.status_code,
            message,
            model=self._model,
            service="Gemini API",
            error_code=code,
            retry_after=parse_retry_after(response.headers),
        )

    def _map_error(self, exc: Exception) -> ClientError:
        if isinstance(exc, httpx.TimeoutException):
            return timeout_error(self._config.timeout)
        if isinstance(exc, httpx.ConnectError) and _is_dns_failure(exc):
            return dns_error(httpx.URL(self._base_url).host, exc)
        return connection_error(exc)
