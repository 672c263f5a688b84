"""统一异常模型。

所有跨模块抛出的错误都继承自 LumeError，
调用方可以按类型捕获，也可以统一读取 code / message。

重试策略只关心两类：
- MissingCredentialError：凭证缺失，重试没有意义，直接终止。
- 其他 LumeError：可重试，预算耗尽后包装为 AllRetriesFailedError。
"""

from typing import Optional


class LumeError(Exception):
    """异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、attempts 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class MissingCredentialError(LumeError):
    """未配置 API Key。终止性错误，编排层不会重试。"""


class NetworkError(LumeError):
    """网络层错误，例如连接失败、读取超时等。"""


class CircuitOpenError(NetworkError):
    """熔断器处于打开状态，请求在本地直接失败，不会发往网络。"""


class HttpError(LumeError):
    """Provider 返回非 2xx 状态码。

    status / body 保留原始响应，便于排查。
    """

    def __init__(self, status: int, body: str, code: str = "HTTP_ERROR", message: Optional[str] = None, **extra):
        self.status = status
        self.body = body
        super().__init__(code=code, message=message or f"HTTP {status}: {body}", http_status=status, **extra)


class RateLimitError(HttpError):
    """Provider 限流（429）。"""


class InvalidResponseError(LumeError):
    """状态码正常，但响应体不是预期的 JSON 对象。"""

    def __init__(self, status: int, body: str, message: Optional[str] = None, **extra):
        self.status = status
        self.body = body
        super().__init__(
            code="INVALID_RESPONSE",
            message=message or f"invalid response body (HTTP {status}): {body[:200]}",
            http_status=502,
            **extra,
        )


class NoProviderError(LumeError):
    """Conversation 上未设置 provider，没有执行目标。"""


class StreamingNotSupportedError(LumeError):
    """Provider 未实现 stream 能力。"""


class EmbeddingsNotSupportedError(LumeError):
    """Provider 未实现 embeddings 能力。"""


class AllRetriesFailedError(LumeError):
    """重试预算耗尽。

    last_error 是最后一次尝试的具体错误，同时通过 __cause__ 链接。
    """

    def __init__(self, last_error: Optional[BaseException], attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            code="ALL_RETRIES_FAILED",
            message=f"All {attempts} attempt(s) failed{detail}",
            attempts=attempts,
        )


class ValidationError(LumeError):
    """参数或配置校验失败。"""


class MediaError(ValidationError):
    """媒体内容无法解析（文件不存在、类型不支持、读取失败）。"""


class TaskCancelledError(LumeError):
    """异步任务被取消，结果不再投递给调用方。"""


class TaskTimeoutError(LumeError):
    """异步任务在给定时间内没有完成。"""
