"""常用模型的快捷构造。

    gemini_flash().text("Hello").call()
    gpt4o_mini(conv).call()

传入已有 Conversation 时只替换 provider 与 model，消息和用量保留。
"""

from typing import Any, Optional

from lume_core.domain.conversation import Conversation
from lume_core.providers.gemini_client import GeminiClient
from lume_core.providers.openai_client import OpenAIClient


def _with(conv: Optional[Conversation], adapter: Any, model: str) -> Conversation:
    return (conv or Conversation.new()).provider(adapter).model(model)


# ---- Gemini ----

def gemini_flash(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, GeminiClient(), "gemini-2.5-flash")


def gemini_pro(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, GeminiClient(), "gemini-2.5-pro")


def gemini_flash_2_0(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, GeminiClient(), "gemini-2.0-flash")


def gemini_flash_1_5(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, GeminiClient(), "gemini-1.5-flash")


def gemini_pro_1_5(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, GeminiClient(), "gemini-1.5-pro")


def gemini_embeddings(conv: Optional[Conversation] = None, **options: Any) -> Conversation:
    """用 Gemini 生成向量，options 支持 task_type / output_dimensionality。"""

    return (conv or Conversation.new()).provider(GeminiClient()).embeddings(**options)


# ---- OpenAI ----

def gpt4o(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, OpenAIClient(), "gpt-4o")


def gpt4o_mini(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, OpenAIClient(), "gpt-4o-mini")


def o1(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, OpenAIClient(), "o1-preview")


def o1_mini(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, OpenAIClient(), "o1-mini")


def gpt4_turbo(conv: Optional[Conversation] = None) -> Conversation:
    return _with(conv, OpenAIClient(), "gpt-4-turbo")
