"""Provider 共用的 HTTP 辅助函数。

- 超时：options.timeout（毫秒）优先，否则取 settings.http_timeout（秒）。
- 熔断：options.circuit_breaker 打开时，为本次客户端挂上熔断 transport。
- 错误映射：网络异常 -> NetworkError，429 -> RateLimitError，其他 >=400 -> HttpError，
  响应体不是 JSON 对象 -> InvalidResponseError。
"""

from contextlib import ExitStack
from typing import Any, Dict, Iterable, Iterator

import httpx

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import HttpError, InvalidResponseError, NetworkError, RateLimitError
from lume_core.infrastructure.http.circuit import CircuitBreakerTransport, resolve_breaker
from lume_core.streaming.sse import Extractor, TextStream, from_frames


def timeout_seconds(conv: Conversation, cfg: Any) -> float:
    timeout_ms = conv.option("timeout")
    if timeout_ms is not None:
        return float(timeout_ms) / 1000
    return float(getattr(cfg, "http_timeout", 30.0))


def open_client(conv: Conversation, cfg: Any) -> httpx.Client:
    kwargs: Dict[str, Any] = {"timeout": timeout_seconds(conv, cfg), "trust_env": False}
    breaker = resolve_breaker(conv.option("circuit_breaker"), cfg)
    if breaker is not None:
        kwargs["transport"] = CircuitBreakerTransport(breaker)
    return httpx.Client(**kwargs)


def check_response(resp: Any, provider: str) -> None:
    if resp.status_code < 400:
        return
    body = _body_text(resp)
    if resp.status_code == 429:
        raise RateLimitError(status=429, body=body, code="RATE_LIMIT", message=f"{provider} rate limit", provider=provider)
    raise HttpError(status=resp.status_code, body=body, provider=provider)


def post_json(conv: Conversation, cfg: Any, url: str, payload: dict, headers: Dict[str, str], provider: str) -> dict:
    """发送一次 JSON POST 并返回解析后的响应体。"""

    try:
        with open_client(conv, cfg) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.RequestError as e:
        # 网络错误：DNS 失败、连接/读取超时等
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=provider)
    check_response(resp, provider)
    try:
        data = resp.json()
    except ValueError:
        raise InvalidResponseError(status=resp.status_code, body=_body_text(resp), provider=provider)
    if not isinstance(data, dict):
        raise InvalidResponseError(
            status=resp.status_code,
            body=_body_text(resp),
            message=f"{provider} returned {type(data).__name__}, expected a JSON object",
            provider=provider,
        )
    return data


def open_stream(
    conv: Conversation,
    cfg: Any,
    url: str,
    payload: dict,
    headers: Dict[str, str],
    provider: str,
    extractor: Extractor,
) -> TextStream:
    """打开流式连接并返回 TextStream。

    连接与状态码在这里同步检查，错误立即抛出；
    之后每次拉取才读取下一行，连接在流耗尽或关闭时释放。
    """

    stack = ExitStack()
    try:
        client = stack.enter_context(open_client(conv, cfg))
        resp = stack.enter_context(client.stream("POST", url, json=payload, headers=headers))
        check_response(resp, provider)
    except httpx.RequestError as e:
        stack.close()
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=provider)
    except BaseException:
        stack.close()
        raise
    return from_frames(_iter_lines(resp, provider), extractor, on_close=stack.close)


def _iter_lines(resp: Any, provider: str) -> Iterator[str]:
    lines: Iterable[str] = resp.iter_lines()
    try:
        yield from lines
    except httpx.RequestError as e:
        raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=provider)


def _body_text(resp: Any) -> str:
    # 流式响应需要先读完 body 才能取 text
    reader = getattr(resp, "read", None)
    if callable(reader):
        try:
            reader()
        except httpx.HTTPError as e:
            return f"<unreadable body: {e}>"
    return resp.text
