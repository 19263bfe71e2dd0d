from loguru import logger

from chatdelta.cancellation import CancellationToken
from chatdelta.client_config import DEFAULT_RETRIES, DEFAULT_TIMEOUT, ClientConfig, validate_config
from chatdelta.conversation import Conversation, Message, Role
from chatdelta.errors import (
    ClientError,
    ErrorKind,
    RequestCancelledError,
    is_authentication_error,
    is_network_error,
    is_retryable,
)
from chatdelta.parallel import ParallelResult, execute_parallel, execute_parallel_conversation
from chatdelta.provider import (
    SUPPORTED_PROVIDERS,
    AIClient,
    ClientInfo,
    create_client,
    get_api_key_from_env,
    get_available_providers,
    get_client_info,
    get_default_model,
    quick_prompt,
)
from chatdelta.response import AiResponse, ResponseMetadata
from chatdelta.retry import (
    RetryPolicy,
    RetryStrategy,
    compute_delay,
    execute_with_exponential_backoff,
    execute_with_retry,
)
from chatdelta.session import ChatSession
from chatdelta.streaming import (
    ChunkStream,
    StreamChunk,
    merge_stream_chunks,
    stream_conversation_to_string,
    stream_to_string,
)

__all__ = [
    "AIClient",
    "AiResponse",
    "CancellationToken",
    "ChatSession",
    "ChunkStream",
    "ClientConfig",
    "ClientError",
    "ClientInfo",
    "Conversation",
    "DEFAULT_RETRIES",
    "DEFAULT_TIMEOUT",
    "ErrorKind",
    "Message",
    "ParallelResult",
    "RequestCancelledError",
    "ResponseMetadata",
    "RetryPolicy",
    "RetryStrategy",
    "Role",
    "SUPPORTED_PROVIDERS",
    "StreamChunk",
    "compute_delay",
    "create_client",
    "execute_parallel",
    "execute_parallel_conversation",
    "execute_with_exponential_backoff",
    "execute_with_retry",
    "get_api_key_from_env",
    "get_available_providers",
    "get_client_info",
    "get_default_model",
    "is_authentication_error",
    "is_network_error",
    "is_retryable",
    "merge_stream_chunks",
    "quick_prompt",
    "stream_conversation_to_string",
    "stream_to_string",
    "validate_config",
]

# Silent until the host application opts in via setup_logging
logger.disable("chatdelta")
