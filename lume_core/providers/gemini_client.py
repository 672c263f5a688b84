"""Gemini Provider 适配器。

本模块负责：

1. 把 Conversation 转换为 Gemini generateContent 请求：
   - contents/parts 结构，assistant 角色映射为 "model"；
   - 第一条 system 消息提升为 system_instruction，不放进 contents；
   - temperature / max_tokens / response_schema 写入 generationConfig；
   - safety_settings 原样透传。
2. 调用 HTTP 接口并处理网络/API 异常。
3. 解析响应文本与 usageMetadata，按模型价格累计费用和 token。
4. 流式（streamGenerateContent?alt=sse）与向量（embedContent）两种可选能力。
"""

import re
from typing import Any, Dict, List, Optional

from lume_core.config.settings import settings
from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import MissingCredentialError, ValidationError
from lume_core.domain.models import AudioPart, ContentPart, FilePart, ImagePart, Message, TextPart
from lume_core.providers.http import open_stream, post_json
from lume_core.providers.registry import (
    GEMINI_CONFIG,
    GEMINI_EMBEDDING_DIMENSIONS,
    GEMINI_EMBEDDING_MODEL,
)
from lume_core.streaming.sse import TextStream, dig

_IMAGE_MIME_RE = re.compile(r"^data:image/([a-zA-Z0-9.+-]+);")
_SNIFFABLE_IMAGE_TYPES = frozenset({"png", "jpeg", "jpg", "webp", "heic", "heif"})
DEFAULT_IMAGE_MIME = "image/jpeg"


class GeminiClient:
    """Gemini 提供方客户端实现。

    - name: Provider 名称（供日志/调试使用）。
    - call / stream / embeddings: 对外统一调用入口。
    """

    name = "gemini"

    def __init__(self, cfg=settings):
        # Settings 里包含 api_key、base_url、超时与熔断默认值
        self._settings = cfg

    # ---- 请求构造 ----

    def build_request(self, conv: Conversation) -> Dict[str, Any]:
        request: Dict[str, Any] = {"contents": self._build_contents(conv)}

        system_text = self._find_system_message(conv.messages)
        if system_text is not None:
            request["system_instruction"] = {"parts": [{"text": system_text}]}

        generation_config: Dict[str, Any] = {}
        if conv.option("temperature") is not None:
            generation_config["temperature"] = conv.option("temperature")
        if conv.option("max_tokens") is not None:
            generation_config["maxOutputTokens"] = conv.option("max_tokens")
        if conv.option("response_schema") is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = conv.option("response_schema")
        if generation_config:
            request["generationConfig"] = generation_config

        if conv.option("safety_settings") is not None:
            request["safetySettings"] = conv.option("safety_settings")
        return request

    # ---- 非流式 ----

    def call(self, conv: Conversation) -> Conversation:
        api_key = self._api_key()
        model = conv.model_name or GEMINI_CONFIG.default_model
        request = self.build_request(conv)
        data = post_json(
            conv,
            self._settings,
            self._url(model, "generateContent"),
            request,
            self._headers(api_key),
            self.name,
        )
        content = self._extract_text(data)
        usage = data.get("usageMetadata") or {}
        cost = GEMINI_CONFIG.calculate_cost(
            model,
            usage.get("promptTokenCount") or 0,
            usage.get("candidatesTokenCount") or 0,
        )
        return conv.with_result(content).add_usage(cost, usage.get("totalTokenCount") or 0)

    # ---- 流式 ----

    def stream(self, conv: Conversation) -> TextStream:
        api_key = self._api_key()
        model = conv.model_name or GEMINI_CONFIG.default_model
        request = self.build_request(conv)
        headers = self._headers(api_key)
        headers["Accept"] = "text/event-stream"
        return open_stream(
            conv,
            self._settings,
            self._url(model, "streamGenerateContent") + "?alt=sse",
            request,
            headers,
            self.name,
            self._extract_text,
        )

    # ---- 向量 ----

    def embeddings(self, conv: Conversation, **options: Any) -> Conversation:
        """生成向量。

        所有消息中的文本按顺序拼接后作为输入。

        Options:
            task_type: "SEMANTIC_SIMILARITY"、"RETRIEVAL_QUERY"、"RETRIEVAL_DOCUMENT" 等。
            output_dimensionality: 128、256、512、768、1536 或 3072。
        """

        api_key = self._api_key()
        merged = {**conv.options, **options}
        dims = merged.get("output_dimensionality")
        if dims is not None and dims not in GEMINI_EMBEDDING_DIMENSIONS:
            raise ValidationError(
                code="INVALID_DIMENSIONALITY",
                message=f"output_dimensionality must be one of {GEMINI_EMBEDDING_DIMENSIONS}, got {dims}",
            )
        text = "\n".join(t for t in (m.text() for m in conv.messages) if t)
        if not text:
            raise ValidationError(code="EMPTY_INPUT", message="no text content to embed")

        request: Dict[str, Any] = {
            "model": f"models/{GEMINI_EMBEDDING_MODEL}",
            "content": {"parts": [{"text": text}]},
        }
        if merged.get("task_type"):
            request["taskType"] = merged["task_type"]
        if dims is not None:
            request["outputDimensionality"] = dims

        data = post_json(
            conv,
            self._settings,
            self._url(GEMINI_EMBEDDING_MODEL, "embedContent"),
            request,
            self._headers(api_key),
            self.name,
        )
        values = dig(data, "embedding", "values") or []
        return conv.with_result([float(v) for v in values])

    # ---- 辅助方法 ----

    def _api_key(self) -> str:
        api_key = getattr(self._settings, "gemini_api_key", None)
        if not api_key:
            # 凭证缺失单独建模，编排层据此停止重试
            raise MissingCredentialError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        return api_key

    def _url(self, model: str, endpoint: str) -> str:
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        return f"{base}/v1beta/models/{model}:{endpoint}"

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {"x-goog-api-key": api_key, "Content-Type": "application/json"}

    @staticmethod
    def _extract_text(data: Any) -> Optional[str]:
        """取第一个候选的全部文本片段；结构缺失时返回 None。"""

        parts = dig(data, "candidates", 0, "content", "parts")
        if not isinstance(parts, list):
            return None
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            return None
        return "".join(texts)

    @staticmethod
    def _find_system_message(messages) -> Optional[str]:
        for m in messages:
            if m.role == "system":
                return m.text()
        return None

    def _build_contents(self, conv: Conversation) -> List[Dict[str, Any]]:
        return [
            self._message_to_content(m, conv.model_name)
            for m in conv.messages
            if m.role != "system"
        ]

    def _message_to_content(self, message: Message, model: Optional[str]) -> Dict[str, Any]:
        if isinstance(message.content, str):
            parts = [{"text": message.content}]
        else:
            parts = [self._convert_part(p, model) for p in message.content]
        return {"role": "model" if message.role == "assistant" else "user", "parts": parts}

    def _convert_part(self, part: ContentPart, model: Optional[str]) -> Dict[str, Any]:
        if isinstance(part, TextPart):
            return {"text": part.content}
        if isinstance(part, ImagePart):
            if not GEMINI_CONFIG.supports_vision(model):
                return {"text": "[Image not supported by this model]"}
            return {
                "inline_data": {
                    "mime_type": part.mime_type or detect_image_mime_type(part.content),
                    "data": strip_data_url(part.content),
                }
            }
        if isinstance(part, AudioPart):
            return {"text": "[Audio not yet supported]"}
        if isinstance(part, FilePart):
            return {"text": "[Files not yet supported]"}
        raise TypeError(f"Unknown content part: {type(part).__name__}")


def strip_data_url(content: str) -> str:
    """data URL 只保留逗号后的 base64 部分。"""

    if content.startswith("data:"):
        _, _, payload = content.partition(",")
        return payload or content[len("data:"):]
    return content


def detect_image_mime_type(content: str) -> str:
    match = _IMAGE_MIME_RE.match(content)
    if match and match.group(1).lower() in _SNIFFABLE_IMAGE_TYPES:
        return f"image/{match.group(1).lower()}"
    return DEFAULT_IMAGE_MIME
