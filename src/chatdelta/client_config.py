from __future__ import annotations

from dataclasses import dataclass

from chatdelta.errors import invalid_parameter_error
from chatdelta.retry import RetryPolicy, RetryStrategy

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3


@dataclass(frozen=True)
class ClientConfig:
    """Options shared by every vendor client.

    Optional sampling fields stay ``None`` until set so that "not set" is
    never confused with zero. Derive variants with ``dataclasses.replace``.
    """

    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    retry_strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    system_message: str | None = None
    base_url: str | None = None

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=max(0, self.retries), strategy=self.retry_strategy)


def validate_config(config: ClientConfig) -> None:
    if config.timeout <= 0:
        raise invalid_parameter_error("timeout", config.timeout)
    if config.retries < 0:
        raise invalid_parameter_error("retries", config.retries)
    if config.temperature is not None and not 0 <= config.temperature <= 2:
        raise invalid_parameter_error("temperature", config.temperature)
    if config.max_tokens is not None and config.max_tokens <= 0:
        raise invalid_parameter_error("max_tokens", config.max_tokens)
    if config.top_p is not None and not 0 <= config.top_p <= 1:
        raise invalid_parameter_error("top_p", config.top_p)
    if config.frequency_penalty is not None and not -2 <= config.frequency_penalty <= 2:
        raise invalid_parameter_error("frequency_penalty", config.frequency_penalty)
    if config.presence_penalty is not None and not -2 <= config.presence_penalty <= 2:
        raise invalid_parameter_error("presence_penalty", config.presence_penalty)
