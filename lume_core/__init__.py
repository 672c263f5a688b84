"""Lume Core 顶层包。

与具体厂商无关的对话客户端：用链式 mutator 构造 Conversation，
交给 Provider 适配器同步、流式或异步执行，并跨轮次累计费用与 token。
"""

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import (
    AllRetriesFailedError,
    CircuitOpenError,
    EmbeddingsNotSupportedError,
    HttpError,
    InvalidResponseError,
    LumeError,
    MediaError,
    MissingCredentialError,
    NetworkError,
    NoProviderError,
    RateLimitError,
    StreamingNotSupportedError,
    ValidationError,
)
from lume_core.domain.models import AudioPart, FilePart, ImagePart, Message, TextPart
from lume_core.domain.results import CallResult, StreamEvent, TaskFailure
from lume_core.engine.async_runner import AsyncTask, await_all, call_async, cancel, parallel_map, stream_async
from lume_core.infrastructure.http.circuit import CircuitBreakerConfig
from lume_core.providers import GeminiClient, OpenAIClient, create_provider

__all__ = [
    "Conversation",
    "Message",
    "TextPart",
    "ImagePart",
    "AudioPart",
    "FilePart",
    "GeminiClient",
    "OpenAIClient",
    "create_provider",
    "CircuitBreakerConfig",
    "AsyncTask",
    "CallResult",
    "StreamEvent",
    "TaskFailure",
    "call_async",
    "stream_async",
    "await_all",
    "cancel",
    "parallel_map",
    "LumeError",
    "MissingCredentialError",
    "HttpError",
    "RateLimitError",
    "InvalidResponseError",
    "NetworkError",
    "CircuitOpenError",
    "NoProviderError",
    "StreamingNotSupportedError",
    "EmbeddingsNotSupportedError",
    "AllRetriesFailedError",
    "ValidationError",
    "MediaError",
]
