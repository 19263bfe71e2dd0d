from dataclasses import dataclass, field


@dataclass
class ResponseMetadata:
    model_used: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    request_id: str | None = None
    latency_ms: int | None = None


@dataclass
class AiResponse:
    content: str
    metadata: ResponseMetadata = field(default_factory=ResponseMetadata)
