"""OpenAI Provider 适配器。

接口风格为 chat/completions：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

system 消息按 OpenAI 的原生方式保留在 messages 中；
response_schema 转换为 response_format.json_schema。
本适配器不提供 embeddings 能力。
"""

from typing import Any, Dict, List, Optional, Union

from lume_core.config.settings import settings
from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import MissingCredentialError
from lume_core.domain.models import AudioPart, ContentPart, FilePart, ImagePart, Message, TextPart
from lume_core.providers.http import open_stream, post_json
from lume_core.providers.registry import OPENAI_CONFIG
from lume_core.streaming.sse import TextStream, dig


class OpenAIClient:
    """OpenAI 提供方客户端实现。"""

    name = "openai"

    def __init__(self, cfg=settings):
        self._settings = cfg

    # ---- 请求构造 ----

    def build_request(self, conv: Conversation) -> Dict[str, Any]:
        model = conv.model_name or OPENAI_CONFIG.default_model
        request: Dict[str, Any] = {
            "model": model,
            "messages": [self._message_to_payload(m, model) for m in conv.messages],
        }
        if conv.option("stream"):
            request["stream"] = True
        if conv.option("response_schema") is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "strict": True,
                    "schema": conv.option("response_schema"),
                },
            }
        if conv.option("temperature") is not None:
            request["temperature"] = conv.option("temperature")
        if conv.option("max_tokens") is not None:
            request["max_tokens"] = conv.option("max_tokens")
        return request

    # ---- 非流式 ----

    def call(self, conv: Conversation) -> Conversation:
        api_key = self._api_key()
        model = conv.model_name or OPENAI_CONFIG.default_model
        data = post_json(
            conv,
            self._settings,
            self._url(),
            self.build_request(conv),
            self._headers(api_key),
            self.name,
        )
        content = dig(data, "choices", 0, "message", "content")
        usage = data.get("usage") or {}
        cost = OPENAI_CONFIG.calculate_cost(
            model,
            usage.get("prompt_tokens") or 0,
            usage.get("completion_tokens") or 0,
        )
        return conv.with_result(content).add_usage(cost, usage.get("total_tokens") or 0)

    # ---- 流式 ----

    def stream(self, conv: Conversation) -> TextStream:
        api_key = self._api_key()
        request = self.build_request(conv.opts(stream=True))
        headers = self._headers(api_key)
        headers["Accept"] = "text/event-stream"
        return open_stream(
            conv,
            self._settings,
            self._url(),
            request,
            headers,
            self.name,
            self._extract_delta,
        )

    # ---- 辅助方法 ----

    def _api_key(self) -> str:
        api_key = getattr(self._settings, "openai_api_key", None)
        if not api_key:
            raise MissingCredentialError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        return api_key

    def _url(self) -> str:
        base = getattr(self._settings, "openai_base_url", None) or OPENAI_CONFIG.base_url
        return f"{base}/chat/completions"

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}

    @staticmethod
    def _extract_delta(data: Any) -> Optional[str]:
        return dig(data, "choices", 0, "delta", "content")

    def _message_to_payload(self, message: Message, model: str) -> Dict[str, Any]:
        content: Union[str, List[Dict[str, Any]]]
        if isinstance(message.content, str):
            content = message.content
        else:
            content = [self._convert_part(p, model) for p in message.content]
        return {"role": message.role, "content": content}

    def _convert_part(self, part: ContentPart, model: str) -> Dict[str, Any]:
        if isinstance(part, TextPart):
            return {"type": "text", "text": part.content}
        if isinstance(part, ImagePart):
            if not OPENAI_CONFIG.supports_vision(model):
                return {"type": "text", "text": "[Image not supported by this model]"}
            return {"type": "image_url", "image_url": {"url": to_image_url(part)}}
        if isinstance(part, AudioPart):
            return {"type": "text", "text": "[Audio not yet supported]"}
        if isinstance(part, FilePart):
            return {"type": "text", "text": "[Files not yet supported]"}
        raise TypeError(f"Unknown content part: {type(part).__name__}")


def to_image_url(part: ImagePart) -> str:
    """URL 与 data URL 原样使用，原始 base64 补上 data URL 头。"""

    content = part.content
    if content.startswith("data:") or content.startswith("http://") or content.startswith("https://"):
        return content
    return f"data:{part.mime_type or 'image/jpeg'};base64,{content}"
