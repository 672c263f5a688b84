"""统一的消息与内容数据模型。

本模块定义了在不同 Provider 之间共享的标准数据结构：

- ContentPart: 一条消息里的一个内容片段（text/image/audio/file）。
- Message: 一条对话消息（system/user/assistant）。
- OPTION_KEYS: Conversation.options 能识别的配置项。

ContentPart 是封闭的联合类型：四个 frozen dataclass，
Provider 适配层用 isinstance 逐一分派，新增类型时各适配器都需要处理。
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Literal, Optional, Tuple, Union
from uuid import uuid4


Role = Literal["system", "user", "assistant"]


def next_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class TextPart:
    content: str
    mime_type: Optional[str] = None
    filename: Optional[str] = None
    id: str = field(default_factory=next_id)


@dataclass(frozen=True)
class ImagePart:
    """图片片段。content 可以是 data URL、http(s) URL 或原始 base64。"""

    content: str
    mime_type: Optional[str] = None
    filename: Optional[str] = None
    id: str = field(default_factory=next_id)


@dataclass(frozen=True)
class AudioPart:
    content: str
    mime_type: Optional[str] = None
    filename: Optional[str] = None
    id: str = field(default_factory=next_id)


@dataclass(frozen=True)
class FilePart:
    content: str
    mime_type: Optional[str] = None
    filename: Optional[str] = "file"
    id: str = field(default_factory=next_id)


ContentPart = Union[TextPart, ImagePart, AudioPart, FilePart]
MessageContent = Union[str, Tuple[ContentPart, ...]]


@dataclass(frozen=True)
class Message:
    """一条对话消息。

    - role: system / user / assistant。
    - content: 纯文本，或按追加顺序排列的 ContentPart 元组。
    - id: 唯一标识，仅用于 remove_message，不参与排序。
    """

    role: Role
    content: MessageContent
    id: str = field(default_factory=next_id)

    def text(self) -> str:
        """返回消息中的全部文本（非文本片段忽略）。"""

        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.content for p in self.content if isinstance(p, TextPart))


# Conversation.opts 可识别的配置项
OPTION_KEYS: FrozenSet[str] = frozenset(
    {
        "temperature",
        "max_tokens",
        "timeout",
        "retries",
        "response_schema",
        "safety_settings",
        "async",
        "callback",
        "circuit_breaker",
        "task_type",
        "output_dimensionality",
        "stream",
    }
)

DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_RETRIES = 0
