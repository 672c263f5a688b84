"""执行编排模块。

一轮对话的状态流转：Pending -> Attempting -> Succeeded / Retrying / Failed。

- options.retries（默认 0）是第一次之外最多再尝试的次数。
- MissingCredentialError 立即终止，不计入重试。
- 其他错误（LumeError 或适配器内部的任意异常）都会重试，预算耗尽后抛出 AllRetriesFailedError，
  last_error 指向最后一次的具体错误。
- 成功后只追加一条 assistant 消息，重试过程中不会追加。

熔断器由 Provider 的 HTTP 层按 options.circuit_breaker 挂载，不在这里处理；
熔断打开时的快速失败同样计入重试次数。
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import (
    AllRetriesFailedError,
    EmbeddingsNotSupportedError,
    LumeError,
    MissingCredentialError,
    NoProviderError,
    StreamingNotSupportedError,
)
from lume_core.domain.models import DEFAULT_RETRIES
from lume_core.infrastructure.logging.logger import logger
from lume_core.providers.base import ProviderClient, supports_embeddings, supports_streaming
from lume_core.streaming.sse import TextStream


def call(conv: Conversation) -> Union[Conversation, Any]:
    """统一入口：options.async 为真时转交异步层，返回 AsyncTask。"""

    _require_provider(conv)
    if conv.option("async", False):
        from lume_core.engine.async_runner import call_async

        return call_async(conv, callback=conv.option("callback"))
    return call_sync(conv)


def call_sync(conv: Conversation) -> Conversation:
    """同步执行一轮对话（带重试）。

    Returns:
        追加了 assistant 消息、更新了 last_result / cost / tokens_used 的新 Conversation。

    Raises:
        NoProviderError: 未设置 provider。
        MissingCredentialError: 未配置 API Key（只尝试一次）。
        AllRetriesFailedError: 所有尝试均失败。
    """

    adapter = _require_provider(conv)
    retries = max(int(conv.option("retries", DEFAULT_RETRIES) or 0), 0)
    attempts = retries + 1
    log_ctx: Dict[str, Any] = {
        "trace_id": f"tr-{uuid4().hex}",
        "provider": getattr(adapter, "name", type(adapter).__name__),
        "model": conv.model_name,
    }
    start_time = time.time()

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            result = adapter.call(conv)
        except MissingCredentialError as e:
            _log(logging.WARNING, "Missing credential, not retrying", log_ctx, attempt=attempt, code=e.code)
            raise
        except LumeError as e:
            last_error = e
            _log(
                logging.WARNING,
                "Attempt failed",
                log_ctx,
                attempt=attempt,
                max_attempts=attempts,
                code=e.code,
                error=str(e),
            )
            continue
        except Exception as e:  # noqa: BLE001 - 适配器内部的非预期错误同样计入重试
            last_error = e
            _log(
                logging.WARNING,
                "Attempt failed with unexpected error",
                log_ctx,
                attempt=attempt,
                max_attempts=attempts,
                error_type=type(e).__name__,
                error=str(e),
            )
            continue

        content = result.last_result if result.last_result is not None else ""
        final = result.append_message("assistant", content)
        _log(
            logging.INFO,
            "Completed turn",
            log_ctx,
            attempt=attempt,
            elapsed_seconds=round(time.time() - start_time, 2),
            tokens_used=final.tokens_used,
            cost=final.cost,
        )
        return final

    _log(logging.ERROR, "All retries failed", log_ctx, attempts=attempts)
    raise AllRetriesFailedError(last_error, attempts) from last_error


def stream(conv: Conversation) -> TextStream:
    """打开流式调用，返回单遍的文本增量迭代器。流式调用不写回对话历史。"""

    adapter = _require_provider(conv)
    if not supports_streaming(adapter):
        raise StreamingNotSupportedError(
            code="STREAMING_NOT_SUPPORTED",
            message=f"provider {getattr(adapter, 'name', adapter)!r} does not support streaming",
        )
    _log(logging.INFO, "Opening stream", {"provider": getattr(adapter, "name", None), "model": conv.model_name})
    return adapter.stream(conv)


def embeddings(conv: Conversation, **options: Any) -> Conversation:
    adapter = _require_provider(conv)
    if not supports_embeddings(adapter):
        raise EmbeddingsNotSupportedError(
            code="EMBEDDINGS_NOT_SUPPORTED",
            message=f"provider {getattr(adapter, 'name', adapter)!r} does not support embeddings",
        )
    return adapter.embeddings(conv, **options)


def chain(conv: Conversation, func: Callable[[Conversation], Any]) -> Any:
    """执行一轮对话，成功后把结果交给 func（常用于串联下一轮）。"""

    return func(call_sync(conv))


def _require_provider(conv: Conversation) -> ProviderClient:
    if conv.provider_adapter is None:
        raise NoProviderError(code="NO_PROVIDER", message="no provider configured")
    return conv.provider_adapter


def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
    payload = dict(log_ctx)
    payload.update(fields)
    logger.log(level, message, extra={"extra": payload})
