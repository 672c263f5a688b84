"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口与能力探测 (base)。
- 维护模型价格与视觉能力表 (registry)。
- 提供各厂商的具体实现 (gemini_client、openai_client)。
- 常用模型的快捷构造 (presets)。
"""

from typing import Literal, Optional

from lume_core.config.settings import settings
from lume_core.providers.base import (
    EmbeddingsProvider,
    ProviderClient,
    StreamingProvider,
    supports_embeddings,
    supports_streaming,
)
from lume_core.providers.gemini_client import GeminiClient
from lume_core.providers.openai_client import OpenAIClient


def create_provider(name: Optional[str] = None, cfg=None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = cfg or settings
    provider_name = (name or getattr(cfg, "default_provider", "gemini")).lower()
    if provider_name == "openai":
        return OpenAIClient(cfg)
    if provider_name == "gemini":
        return GeminiClient(cfg)
    raise KeyError(f"Unknown provider: {provider_name!r}")


DefaultProviderName = Literal["gemini", "openai"]

__all__ = [
    "ProviderClient",
    "StreamingProvider",
    "EmbeddingsProvider",
    "supports_streaming",
    "supports_embeddings",
    "GeminiClient",
    "OpenAIClient",
    "create_provider",
    "DefaultProviderName",
]
