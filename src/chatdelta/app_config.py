from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from chatdelta.client_config import DEFAULT_RETRIES, DEFAULT_TIMEOUT, ClientConfig
from chatdelta.retry import RetryStrategy


@dataclass
class AppConfig:
    provider_name: str
    model: str
    client: ClientConfig = field(default_factory=ClientConfig)
    log_level: str = "WARNING"
    log_consumers: list | None = None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _optional_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _optional_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_client_config(config: dict) -> ClientConfig:
    return ClientConfig(
        timeout=float(config.get("Timeout", DEFAULT_TIMEOUT)),
        retries=int(config.get("Retries", DEFAULT_RETRIES)),
        retry_strategy=RetryStrategy(str(config.get("RetryStrategy", "exponential")).strip().lower()),
        temperature=_optional_float(config.get("Temperature")),
        max_tokens=_optional_int(config.get("MaxTokens")),
        top_p=_optional_float(config.get("TopP")),
        frequency_penalty=_optional_float(config.get("FrequencyPenalty")),
        presence_penalty=_optional_float(config.get("PresencePenalty")),
        system_message=_optional_str(config.get("SystemMessage")),
        base_url=_optional_str(config.get("BaseUrl")),
    )


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=str(config.get("Provider", "openai")).strip().lower(),
        model=str(config.get("Model", "")).strip(),
        client=parse_client_config(config),
        log_level=config.get("LogLevel", "WARNING"),
        log_consumers=config.get("LogConsumers"),
    )
