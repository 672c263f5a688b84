"""配置管理模块。

支持从初始化参数、config.yaml、环境变量以及 .env 加载配置。
凭证优先取配置对象（init / config.yaml），其次才是 GEMINI_API_KEY /
OPENAI_API_KEY 等环境变量。

Provider 适配器在构造时接收一个 settings 对象（默认使用本模块的 ``settings``），
测试中可以直接传入任何具有相同属性的桩对象。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("LUME_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class YamlConfigSource(PydanticBaseSettingsSource):
    """把 config.yaml 作为一个配置源。"""

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        data = _load_config_from_yaml()
        return data.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        data = _load_config_from_yaml()
        return {k: v for k, v in data.items() if k in self.settings_cls.model_fields}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(default="gemini", description="默认 Provider 名称：gemini 或 openai")

    # Gemini
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Gemini API 基础URL",
    )
    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI API 基础URL",
    )

    http_timeout: float = Field(default=30.0, ge=1.0, description="默认 HTTP 超时时间（秒），options.timeout 优先")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    async_max_workers: int = Field(default=8, ge=1, le=64, description="异步任务共享线程池大小")

    # ---- 熔断器默认参数（options.circuit_breaker=True 时使用） ----
    breaker_failure_threshold: int = Field(default=5, ge=1, description="窗口内连续失败多少次后熔断")
    breaker_window_seconds: float = Field(default=60.0, gt=0, description="失败计数的滚动窗口（秒）")
    breaker_reset_seconds: float = Field(default=30.0, gt=0, description="熔断后的冷却时间（秒）")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 配置文件先于环境变量，环境变量只作兜底
        return (
            init_settings,
            YamlConfigSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


settings = Settings()
