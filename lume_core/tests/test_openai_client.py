import pytest

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import EmbeddingsNotSupportedError, MissingCredentialError
from lume_core.providers.base import supports_embeddings, supports_streaming
from lume_core.providers.openai_client import OpenAIClient


class SettingsStub:
    openai_api_key = "o"
    openai_base_url = "https://openai.test/v1"
    http_timeout = 1.0


def test_build_request_keeps_system_inline():
    conv = (
        Conversation.new()
        .model("gpt-4o-mini")
        .system("be terse")
        .user("hi")
        .opts(temperature=0.1, max_tokens=10, response_schema={"type": "object"})
    )
    request = OpenAIClient(SettingsStub()).build_request(conv)
    assert request["model"] == "gpt-4o-mini"
    assert request["messages"] == [
        {"role": "system", "content": "be terse"},
        {"role": "user", "content": "hi"},
    ]
    assert request["temperature"] == 0.1
    assert request["max_tokens"] == 10
    assert request["response_format"]["type"] == "json_schema"
    assert request["response_format"]["json_schema"]["schema"] == {"type": "object"}
    assert "stream" not in request


def test_build_request_media_parts():
    conv = Conversation.new().user("look").image("QUJD", mime_type="image/png").audio("data:audio/wav;base64,AA")
    content = OpenAIClient(SettingsStub()).build_request(conv)["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "look"}
    assert content[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,QUJD"}}
    assert content[2] == {"type": "text", "text": "[Audio not yet supported]"}


def test_build_request_image_placeholder_for_non_vision_model():
    conv = Conversation.new().model("o1-mini").user("look").image("https://example.com/a.png")
    content = OpenAIClient(SettingsStub()).build_request(conv)["messages"][0]["content"]
    assert content[1] == {"type": "text", "text": "[Image not supported by this model]"}


def test_call_parses_content_and_usage(monkeypatch):
    captured = {}

    class Resp:
        status_code = 200

        def json(self):
            return {
                "choices": [{"message": {"role": "assistant", "content": "ok"}}],
                "usage": {"prompt_tokens": 1000, "completion_tokens": 2000, "total_tokens": 3000},
            }

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    result = OpenAIClient(SettingsStub()).call(Conversation.new().user("hi"))
    assert result.last_result == "ok"
    assert result.tokens_used == 3000
    assert result.cost == pytest.approx(0.0025 + 0.02)
    assert captured["url"] == "https://openai.test/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer o"


def test_stream_sets_stream_flag_and_parses_deltas(monkeypatch):
    captured = {}
    stream_lines = [
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"delta": {"content": "hel"}}]}',
        'data: {"choices": [{"delta": {"content": "lo"}}]}',
        "data: [DONE]",
    ]

    class FakeResponse:
        status_code = 200

        def iter_lines(self):
            for line in stream_lines:
                yield line

    class StreamContext:
        def __enter__(self):
            return FakeResponse()

        def __exit__(self, *args):
            return False

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def stream(self, method, url, json=None, **_):
            captured["payload"] = json
            return StreamContext()

    monkeypatch.setattr("httpx.Client", Client)
    conv = Conversation.new().user("hi")
    assert "".join(OpenAIClient(SettingsStub()).stream(conv)) == "hello"
    assert captured["payload"]["stream"] is True
    # 原对话不受影响
    assert conv.option("stream") is None


def test_missing_key():
    class NoKey:
        openai_api_key = None
        http_timeout = 1.0

    with pytest.raises(MissingCredentialError):
        OpenAIClient(NoKey()).call(Conversation.new().user("hi"))


def test_capabilities():
    client = OpenAIClient(SettingsStub())
    assert supports_streaming(client)
    assert not supports_embeddings(client)
    with pytest.raises(EmbeddingsNotSupportedError):
        Conversation.new().provider(client).user("hi").embeddings()


def test_call_tolerates_null_usage(monkeypatch):
    class Resp:
        status_code = 200

        def json(self):
            return {
                "choices": [{"message": {"content": "ok"}}],
                "usage": {"prompt_tokens": None, "completion_tokens": None, "total_tokens": None},
            }

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    result = OpenAIClient(SettingsStub()).call(Conversation.new().user("hi"))
    assert result.last_result == "ok"
    assert result.cost == 0.0
    assert result.tokens_used == 0
