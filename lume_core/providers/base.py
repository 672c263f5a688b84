"""Provider 抽象接口。

编排层不直接依赖具体厂商的 HTTP 协议，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 必需能力：build_request 把 Conversation 转成厂商请求体；call 完成一次往返。
- 可选能力：stream（流式文本增量）、embeddings（向量）。
  通过 supports_streaming / supports_embeddings 探测，不依赖异常或反射。
"""

from typing import TYPE_CHECKING, Any, Dict, Protocol, runtime_checkable

if TYPE_CHECKING:
    from lume_core.domain.conversation import Conversation
    from lume_core.streaming.sse import TextStream


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - build_request(conv): 纯函数，生成厂商请求 JSON。
    - call(conv): 执行一次非流式调用，返回写入 last_result 与用量的新 Conversation。
    """

    name: str

    def build_request(self, conv: "Conversation") -> Dict[str, Any]:
        ...

    def call(self, conv: "Conversation") -> "Conversation":
        ...


@runtime_checkable
class StreamingProvider(Protocol):
    def stream(self, conv: "Conversation") -> "TextStream":
        """打开流式连接，返回单遍的文本增量迭代器。"""

        ...


@runtime_checkable
class EmbeddingsProvider(Protocol):
    def embeddings(self, conv: "Conversation", **options: Any) -> "Conversation":
        """把消息文本转换为向量，写入 last_result。"""

        ...


def supports_streaming(provider: Any) -> bool:
    return isinstance(provider, StreamingProvider)


def supports_embeddings(provider: Any) -> bool:
    return isinstance(provider, EmbeddingsProvider)
