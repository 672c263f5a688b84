"""Conversation：对话状态的不可变值。

所有 mutator 都返回新的 Conversation，旧引用保持不变，
因此同一个值可以安全地分叉成多条流水线::

    base = Conversation.new().provider(GeminiClient()).system("You are terse.")
    a = base.user("Summarise A").call()
    b = base.user("Summarise B").call()

cost / tokens_used 在整个生命周期内只增不减，只有 new() 会得到全新的值。
执行相关的方法（call/stream/embeddings）委托给 engine.orchestrator。
"""

from __future__ import annotations

import secrets
from types import MappingProxyType
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional, Tuple, Union

from lume_core.domain.exceptions import MediaError
from lume_core.domain.models import (
    OPTION_KEYS,
    AudioPart,
    ContentPart,
    FilePart,
    ImagePart,
    Message,
    MessageContent,
    Role,
    TextPart,
)
from lume_core.infrastructure.media import resolver

if TYPE_CHECKING:
    from lume_core.engine.async_runner import AsyncTask
    from lume_core.providers.base import ProviderClient
    from lume_core.streaming.sse import TextStream


@dataclass(frozen=True)
class Conversation:
    provider_adapter: Optional["ProviderClient"] = None
    model_name: Optional[str] = None
    messages: Tuple[Message, ...] = ()
    last_result: Union[str, List[float], None] = None
    session: Optional[str] = None
    cost: float = 0.0
    tokens_used: int = 0
    errors: Tuple[str, ...] = ()
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        # options 每个快照各持一份只读副本，分支之间互不影响
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @classmethod
    def new(cls) -> "Conversation":
        return cls()

    # ---- 配置 ----

    def provider(self, adapter: "ProviderClient") -> "Conversation":
        return replace(self, provider_adapter=adapter)

    def model(self, name: str) -> "Conversation":
        if not isinstance(name, str) or not name:
            raise TypeError("model name must be a non-empty string")
        return replace(self, model_name=name)

    def opts(self, **options: Any) -> "Conversation":
        """合并配置项，新值覆盖旧值。

        ``async`` 是关键字，可写作 ``async_=True``。未知配置项仍会保存，
        同时记录一条本地错误。
        """

        normalized = {k.rstrip("_"): v for k, v in options.items()}
        unknown = sorted(k for k in normalized if k not in OPTION_KEYS)
        merged = {**self.options, **normalized}
        result = replace(self, options=merged)
        for key in unknown:
            result = result._add_error(f"Unknown option: {key}")
        return result

    def option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def without_options(self, *keys: str) -> "Conversation":
        return replace(self, options={k: v for k, v in self.options.items() if k not in keys})

    # ---- 消息 ----

    def system(self, content: MessageContent) -> "Conversation":
        return self._add_message("system", content)

    def user(self, content: MessageContent) -> "Conversation":
        return self._add_message("user", content)

    def text(self, content: str) -> "Conversation":
        return self.user(content)

    def image(self, content: str, mime_type: Optional[str] = None) -> "Conversation":
        try:
            processed = resolver.process_content(content)
        except MediaError as e:
            return self._add_error(f"Invalid image content: {e.message}")
        return self._add_content_part(ImagePart(content=processed, mime_type=mime_type))

    def audio(self, content: str) -> "Conversation":
        try:
            processed = resolver.process_content(content)
        except MediaError as e:
            return self._add_error(f"Invalid audio content: {e.message}")
        return self._add_content_part(AudioPart(content=processed))

    def image_or_raise(self, content: str, mime_type: Optional[str] = None) -> "Conversation":
        return self._raise_on_new_error(self.image(content, mime_type))

    def audio_or_raise(self, content: str) -> "Conversation":
        return self._raise_on_new_error(self.audio(content))

    def file(self, file_data: str, filename: str = "file") -> "Conversation":
        return self._add_content_part(FilePart(content=file_data, filename=filename))

    def remove_message(self, message_id: str) -> "Conversation":
        return replace(self, messages=tuple(m for m in self.messages if m.id != message_id))

    def new_session(self) -> "Conversation":
        """开启新会话：清空消息，保留 provider/model/options 与累计用量。"""

        token = secrets.token_hex(16)
        while token == self.session:
            token = secrets.token_hex(16)
        return replace(self, session=token, messages=())

    # ---- 结果与用量（由 Provider 适配器调用） ----

    def with_result(self, result: Union[str, List[float], None]) -> "Conversation":
        return replace(self, last_result=result)

    def add_usage(self, cost: float = 0.0, tokens: int = 0) -> "Conversation":
        """累加费用与 token，负值按 0 处理以保证单调不减。"""

        return replace(
            self,
            cost=self.cost + max(float(cost or 0.0), 0.0),
            tokens_used=self.tokens_used + max(int(tokens or 0), 0),
        )

    def append_message(self, role: Role, content: MessageContent) -> "Conversation":
        return self._add_message(role, content)

    # ---- 错误 ----

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None

    # ---- 执行 ----

    def call(self) -> Union["Conversation", "AsyncTask"]:
        """执行一轮对话。

        options 中 async=True 时返回 AsyncTask，否则同步返回新的 Conversation。
        """

        from lume_core.engine import orchestrator

        return orchestrator.call(self)

    def stream(self) -> "TextStream":
        from lume_core.engine import orchestrator

        return orchestrator.stream(self)

    def embeddings(self, **options: Any) -> "Conversation":
        from lume_core.engine import orchestrator

        return orchestrator.embeddings(self, **options)

    def call_async(self, callback: Optional[Callable[..., Any]] = None) -> "AsyncTask":
        from lume_core.engine import async_runner

        return async_runner.call_async(self, callback=callback)

    def chain(self, func: Callable[["Conversation"], Any]) -> Any:
        from lume_core.engine import orchestrator

        return orchestrator.chain(self, func)

    # ---- 内部 ----

    def _add_message(self, role: Role, content: MessageContent) -> "Conversation":
        if isinstance(content, list):
            content = tuple(content)
        return replace(self, messages=self.messages + (Message(role=role, content=content),))

    def _add_content_part(self, part: ContentPart) -> "Conversation":
        # 只有最后一条是 user 消息时才追加到它上面
        if self.messages and self.messages[-1].role == "user":
            last = self.messages[-1]
            if isinstance(last.content, str):
                parts: Tuple[ContentPart, ...] = (TextPart(content=last.content), part)
            else:
                parts = tuple(last.content) + (part,)
            updated = replace(last, content=parts)
            return replace(self, messages=self.messages[:-1] + (updated,))
        return self._add_message("user", (part,))

    def _add_error(self, message: str) -> "Conversation":
        return replace(self, errors=(message,) + self.errors)

    def _raise_on_new_error(self, result: "Conversation") -> "Conversation":
        if len(result.errors) > len(self.errors):
            raise MediaError(code="INVALID_MEDIA", message=result.errors[0])
        return result
