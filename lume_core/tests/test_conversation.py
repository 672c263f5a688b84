import base64

import pytest

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import MediaError
from lume_core.domain.models import AudioPart, FilePart, ImagePart, TextPart

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG fake").decode()


def test_new_conversation_is_empty():
    conv = Conversation.new()
    assert conv.provider_adapter is None
    assert conv.model_name is None
    assert conv.messages == ()
    assert conv.cost == 0.0
    assert conv.tokens_used == 0
    assert conv.errors == ()
    assert dict(conv.options) == {}


def test_mutators_return_new_values():
    base = Conversation.new().system("be brief")
    branch_a = base.user("question A")
    branch_b = base.user("question B")
    assert len(base.messages) == 1
    assert [m.content for m in branch_a.messages] == ["be brief", "question A"]
    assert [m.content for m in branch_b.messages] == ["be brief", "question B"]


def test_text_is_alias_for_user():
    conv = Conversation.new().text("hi")
    assert conv.messages[0].role == "user"
    assert conv.messages[0].content == "hi"


def test_opts_merge_right_biased():
    conv = Conversation.new().opts(temperature=0.2, retries=1).opts(temperature=0.9)
    assert conv.option("temperature") == 0.9
    assert conv.option("retries") == 1
    assert not conv.has_errors


def test_opts_async_keyword_and_unknown_key():
    conv = Conversation.new().opts(async_=True, colour="blue")
    assert conv.option("async") is True
    assert conv.option("colour") == "blue"
    assert conv.last_error == "Unknown option: colour"


def test_options_are_not_shared_between_snapshots():
    a = Conversation.new().opts(temperature=0.1)
    b = a.user("x")
    with pytest.raises(TypeError):
        b.options["temperature"] = 0.9
    c = b.opts(temperature=0.9)
    d = c.without_options("temperature")
    assert a.option("temperature") == 0.1
    assert b.option("temperature") == 0.1
    assert c.option("temperature") == 0.9
    assert d.option("temperature") is None


def test_options_passed_to_constructor_are_copied():
    source = {"retries": 1}
    conv = Conversation(options=source)
    source["retries"] = 5
    assert conv.option("retries") == 1
    with pytest.raises(TypeError):
        conv.options["retries"] = 2


def test_image_promotes_string_content_to_parts():
    conv = Conversation.new().user("describe").image(PNG_DATA_URL)
    assert len(conv.messages) == 1
    content = conv.messages[0].content
    assert isinstance(content[0], TextPart)
    assert content[0].content == "describe"
    assert isinstance(content[1], ImagePart)
    assert content[1].content == PNG_DATA_URL


def test_consecutive_media_parts_share_one_message():
    conv = (
        Conversation.new()
        .user("look")
        .image("https://example.com/a.png")
        .audio("data:audio/wav;base64,AAAA")
        .file("raw-bytes", filename="notes.txt")
    )
    assert len(conv.messages) == 1
    kinds = [type(p) for p in conv.messages[0].content]
    assert kinds == [TextPart, ImagePart, AudioPart, FilePart]
    assert conv.messages[0].content[3].filename == "notes.txt"


def test_media_after_assistant_creates_new_user_message():
    conv = Conversation.new().user("hi").append_message("assistant", "hello").image(PNG_DATA_URL)
    assert [m.role for m in conv.messages] == ["user", "assistant", "user"]
    assert isinstance(conv.messages[-1].content[0], ImagePart)


def test_image_keeps_explicit_mime_type():
    conv = Conversation.new().image("QUJD", mime_type="image/webp")
    assert conv.messages[0].content[0].mime_type == "image/webp"


def test_invalid_image_records_error_and_continues(tmp_path):
    missing = str(tmp_path / "missing.png")
    conv = Conversation.new().user("hi").image(missing).opts(temperature=0.1)
    assert conv.has_errors
    assert conv.last_error.startswith("Invalid image content:")
    assert len(conv.messages) == 1
    assert conv.messages[0].content == "hi"
    assert conv.option("temperature") == 0.1


def test_errors_are_most_recent_first(tmp_path):
    conv = Conversation.new().image(str(tmp_path / "a.png")).audio(str(tmp_path / "b.mp3"))
    assert conv.errors[0].startswith("Invalid audio content:")
    assert conv.errors[1].startswith("Invalid image content:")


def test_image_or_raise(tmp_path):
    with pytest.raises(MediaError) as exc:
        Conversation.new().image_or_raise(str(tmp_path / "nope.jpg"))
    assert "Invalid image content" in exc.value.message

    conv = Conversation.new().image_or_raise(PNG_DATA_URL)
    assert not conv.has_errors


def test_audio_or_raise_ignores_earlier_errors(tmp_path):
    conv = Conversation.new().image(str(tmp_path / "nope.jpg"))
    result = conv.audio_or_raise("data:audio/mp3;base64,AAAA")
    assert len(result.errors) == 1


def test_remove_message():
    conv = Conversation.new().system("s").user("a").user("b")
    target = conv.messages[1].id
    removed = conv.remove_message(target)
    assert [m.content for m in removed.messages] == ["s", "b"]
    assert conv.remove_message("does-not-exist").messages == conv.messages


def test_new_session_clears_messages_only():
    marker = object()
    conv = (
        Conversation.new()
        .provider(marker)
        .model("gemini-2.5-flash")
        .opts(retries=2)
        .user("hi")
        .add_usage(0.5, 10)
    )
    first = conv.new_session()
    second = first.new_session()
    assert first.messages == ()
    assert first.provider_adapter is marker
    assert first.model_name == "gemini-2.5-flash"
    assert first.option("retries") == 2
    assert first.cost == 0.5
    assert first.tokens_used == 10
    assert first.session and second.session
    assert first.session != second.session


def test_usage_is_monotonic():
    conv = Conversation.new().add_usage(0.1, 5).add_usage(-3.0, -7).add_usage(0.2, 1)
    assert conv.cost == pytest.approx(0.3)
    assert conv.tokens_used == 6


def test_model_requires_string():
    with pytest.raises(TypeError):
        Conversation.new().model("")
