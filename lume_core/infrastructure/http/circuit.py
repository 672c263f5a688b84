"""熔断器。

以 httpx transport 装饰器的形式挂到 HTTP 客户端上：

- closed：正常放行，窗口内失败次数达到阈值后转为 open。
- open：冷却期内所有请求本地直接失败（CircuitOpenError），不访问网络。
- half-open：冷却结束后放行一次探测请求，成功则 closed，失败重新 open。

同名熔断器共享状态，状态修改都在 threading.Lock 内完成。
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional

import httpx

from lume_core.domain.exceptions import CircuitOpenError
from lume_core.infrastructure.logging.logger import logger

DEFAULT_BREAKER_NAME = "lume_default_fuse"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """自定义熔断参数，通过 ``opts(circuit_breaker=CircuitBreakerConfig(...))`` 传入。"""

    name: str = DEFAULT_BREAKER_NAME
    failure_threshold: int = 5
    window_seconds: float = 60.0
    reset_seconds: float = 30.0


class CircuitBreaker:
    def __init__(self, config: CircuitBreakerConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._state = "closed"  # closed, open, half-open
        self._failures: Deque[float] = deque()
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> str:
        with self._lock:
            self._refresh()
            return self._state

    def before_request(self) -> bool:
        """Return True if request may proceed."""
        with self._lock:
            self._refresh()
            return self._state != "open"

    def after_success(self) -> None:
        with self._lock:
            self._failures.clear()
            if self._state != "closed":
                logger.info("Circuit breaker closed", extra={"extra": {"breaker": self.name}})
            self._state = "closed"

    def after_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == "half-open":
                self._open(now)
                return
            self._failures.append(now)
            self._trim(now)
            if len(self._failures) >= self.config.failure_threshold:
                self._open(now)

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._state = "closed"

    def _open(self, now: float) -> None:
        self._state = "open"
        self._opened_at = now
        self._failures.clear()
        logger.warning(
            "Circuit breaker opened",
            extra={"extra": {"breaker": self.name, "reset_seconds": self.config.reset_seconds}},
        )

    def _refresh(self) -> None:
        if self._state == "open" and self._clock() - self._opened_at >= self.config.reset_seconds:
            self._state = "half-open"

    def _trim(self, now: float) -> None:
        window = self.config.window_seconds
        while self._failures and now - self._failures[0] > window:
            self._failures.popleft()


_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_breaker(config: CircuitBreakerConfig) -> CircuitBreaker:
    """按名称取熔断器，第一次出现的名称用给定配置创建。"""

    with _registry_lock:
        breaker = _breakers.get(config.name)
        if breaker is None:
            breaker = CircuitBreaker(config)
            _breakers[config.name] = breaker
        return breaker


def reset_breakers() -> None:
    with _registry_lock:
        _breakers.clear()


class CircuitBreakerTransport(httpx.BaseTransport):
    """包装另一个 transport，在请求前后更新熔断器状态。

    网络异常与 5xx 响应计为失败；其他响应计为成功。
    """

    def __init__(self, breaker: CircuitBreaker, transport: Optional[httpx.BaseTransport] = None):
        self._breaker = breaker
        self._transport = transport or httpx.HTTPTransport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if not self._breaker.before_request():
            raise CircuitOpenError(
                code="CIRCUIT_OPEN",
                message=f"circuit '{self._breaker.name}' is open",
                http_status=503,
                breaker=self._breaker.name,
            )
        try:
            response = self._transport.handle_request(request)
        except httpx.TransportError:
            self._breaker.after_failure()
            raise
        if response.status_code >= 500:
            self._breaker.after_failure()
        else:
            self._breaker.after_success()
        return response

    def close(self) -> None:
        self._transport.close()


def resolve_breaker(option: Any, cfg: Any) -> Optional[CircuitBreaker]:
    """把 options["circuit_breaker"] 解析为熔断器实例。

    - None / False：不挂熔断器。
    - True：默认熔断器，参数取自 settings。
    - CircuitBreakerConfig：按其 name 共享的熔断器。
    """

    if option is None or option is False:
        return None
    if option is True:
        return get_breaker(
            CircuitBreakerConfig(
                name=DEFAULT_BREAKER_NAME,
                failure_threshold=getattr(cfg, "breaker_failure_threshold", 5),
                window_seconds=getattr(cfg, "breaker_window_seconds", 60.0),
                reset_seconds=getattr(cfg, "breaker_reset_seconds", 30.0),
            )
        )
    if isinstance(option, CircuitBreakerConfig):
        return get_breaker(option)
    raise TypeError(f"circuit_breaker option must be bool or CircuitBreakerConfig, got {type(option).__name__}")
