"""Provider 与模型配置。

集中维护每个厂商的模型表：

- pricing: 每 1000 token 的输入/输出价格（美元）。
- vision: 模型是否接受图片输入；不支持时图片片段降级为文本占位。

未登记的模型价格按 0 计算，vision 按 False 处理。"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional


@dataclass(frozen=True)
class ModelConfig:
    """单个模型的配置。"""

    name: str
    input_price: float
    output_price: float
    vision: bool = True


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    default_model: str
    models: Mapping[str, ModelConfig]

    def get_model(self, name: Optional[str]) -> Optional[ModelConfig]:
        return self.models.get(name or self.default_model)

    def supports_vision(self, name: Optional[str]) -> bool:
        # 未指定模型时交给厂商默认模型处理，视为支持
        if name is None:
            return True
        model = self.models.get(name)
        return bool(model and model.vision)

    def calculate_cost(self, name: Optional[str], input_tokens: int, output_tokens: int) -> float:
        model = self.get_model(name)
        if model is None:
            return 0.0
        return input_tokens * model.input_price / 1000 + output_tokens * model.output_price / 1000


def _table(*models: ModelConfig) -> Dict[str, ModelConfig]:
    return {m.name: m for m in models}


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com",
    default_model="gemini-2.5-flash",
    models=_table(
        ModelConfig("gemini-2.5-flash", 0.00035, 0.00105),
        ModelConfig("gemini-2.5-pro", 0.0011, 0.0011),
        ModelConfig("gemini-2.0-flash", 0.00035, 0.00105),
        ModelConfig("gemini-1.5-pro", 0.00125, 0.005),
        ModelConfig("gemini-1.5-flash", 0.000075, 0.0003),
    ),
)

GEMINI_EMBEDDING_MODEL = "gemini-embedding-001"
GEMINI_EMBEDDING_DIMENSIONS = (128, 256, 512, 768, 1536, 3072)

OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    default_model="gpt-4o",
    models=_table(
        ModelConfig("gpt-4o", 0.0025, 0.01),
        ModelConfig("gpt-4o-mini", 0.00015, 0.0006),
        ModelConfig("gpt-4-turbo", 0.01, 0.03),
        ModelConfig("o1-preview", 0.075, 0.15, vision=False),
        ModelConfig("o1-mini", 0.018, 0.072, vision=False),
    ),
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "gemini": GEMINI_CONFIG,
    "openai": OPENAI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
