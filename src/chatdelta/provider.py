from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from chatdelta.cancellation import CancellationToken
from chatdelta.client_config import ClientConfig, validate_config
from chatdelta.conversation import Conversation
from chatdelta.errors import invalid_parameter_error, missing_config_error
from chatdelta.response import AiResponse
from chatdelta.streaming import ChunkStream

SUPPORTED_PROVIDERS = ("openai", "anthropic", "claude", "google", "gemini")

_API_KEY_ENV_VARS = {
    "openai": ("OPENAI_API_KEY", "CHATGPT_API_KEY"),
    "anthropic": ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    "claude": ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
    "gemini": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
}

_DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "anthropic": "claude-3-haiku-20240307",
    "claude": "claude-3-haiku-20240307",
    "google": "gemini-1.5-flash",
    "gemini": "gemini-1.5-flash",
}


@runtime_checkable
class AIClient(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def model(self) -> str: ...

    async def send_prompt(self, prompt: str, *, token: CancellationToken | None = None) -> str: ...

    async def send_prompt_with_metadata(
        self, prompt: str, *, token: CancellationToken | None = None
    ) -> AiResponse: ...

    async def send_conversation(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> str: ...

    async def send_conversation_with_metadata(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> AiResponse: ...

    async def stream_prompt(self, prompt: str, *, token: CancellationToken | None = None) -> ChunkStream:
        """Return a chunk stream that always ends with one finished chunk."""
        ...

    async def stream_conversation(
        self, conversation: Conversation, *, token: CancellationToken | None = None
    ) -> ChunkStream: ...

    def supports_streaming(self) -> bool: ...

    def supports_conversations(self) -> bool: ...


@dataclass(frozen=True)
class ClientInfo:
    name: str
    model: str
    supports_streaming: bool
    supports_conversations: bool


def get_client_info(client: AIClient) -> ClientInfo:
    return ClientInfo(
        name=client.name,
        model=client.model,
        supports_streaming=client.supports_streaming(),
        supports_conversations=client.supports_conversations(),
    )


def _normalize(provider_name: str) -> str:
    return provider_name.strip().lower()


def get_api_key_from_env(provider_name: str) -> str:
    for var in _API_KEY_ENV_VARS.get(_normalize(provider_name), ()):
        value = os.environ.get(var, "")
        if value:
            return value
    return ""


def get_default_model(provider_name: str) -> str:
    return _DEFAULT_MODELS.get(_normalize(provider_name), "")


def get_available_providers() -> list[str]:
    return [p for p in SUPPORTED_PROVIDERS if get_api_key_from_env(p)]


def create_client(
    provider_name: str,
    api_key: str = "",
    model: str = "",
    config: ClientConfig | None = None,
) -> AIClient:
    """Factory: create an AIClient by provider name."""
    config = config or ClientConfig()
    validate_config(config)

    name = _normalize(provider_name)
    if name not in SUPPORTED_PROVIDERS:
        raise invalid_parameter_error("provider", provider_name)

    api_key = api_key or get_api_key_from_env(name)
    if not api_key:
        raise missing_config_error(f"API key for provider: {name}")
    model = model or get_default_model(name)

    if name == "openai":
        from chatdelta.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, model, config)
    if name in ("anthropic", "claude"):
        from chatdelta.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, model, config)
    from chatdelta.providers.gemini_provider import GeminiProvider
    return GeminiProvider(api_key, model, config)


async def quick_prompt(
    provider_name: str,
    prompt: str,
    *,
    token: CancellationToken | None = None,
) -> str:
    """Send one prompt with environment credentials and default settings.

    Without a token the call is bounded only by the client timeout.
    """
    client = create_client(provider_name)
    return await client.send_prompt(prompt, token=token)
