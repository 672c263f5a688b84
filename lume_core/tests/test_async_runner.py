import threading
import time

import pytest

from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import (
    AllRetriesFailedError,
    HttpError,
    NetworkError,
    TaskCancelledError,
    TaskTimeoutError,
)
from lume_core.domain.results import StreamEvent, TaskFailure
from lume_core.engine.async_runner import await_all, call_async, cancel, parallel_map, stream_async
from lume_core.streaming.sse import TextStream


class EchoProvider:
    name = "echo"

    def __init__(self, delay=0.0, fail=False):
        self.delay = delay
        self.fail = fail

    def build_request(self, conv):
        return {}

    def call(self, conv):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise HttpError(status=500, body="down")
        return conv.with_result(conv.messages[-1].text().upper()).add_usage(0.1, 1)


class ChunkProvider(EchoProvider):
    def __init__(self, chunks, error_after=None):
        super().__init__()
        self.chunks = chunks
        self.error_after = error_after

    def stream(self, conv):
        def gen():
            for i, chunk in enumerate(self.chunks):
                if self.error_after is not None and i == self.error_after:
                    raise NetworkError(code="NETWORK_ERROR", message="connection reset")
                yield chunk

        return TextStream(gen())


def test_call_async_returns_result():
    conv = Conversation.new().provider(EchoProvider()).user("hi")
    outcome = call_async(conv).result(timeout=5)
    assert outcome.ok
    assert outcome.unwrap().last_result == "HI"
    assert len(outcome.value.messages) == 2


def test_call_async_invokes_callback():
    received = []
    done = threading.Event()

    def on_result(result):
        received.append(result)
        done.set()

    conv = Conversation.new().provider(EchoProvider()).user("hi")
    conv.call_async(on_result)
    assert done.wait(5)
    assert received[0].value.last_result == "HI"


def test_call_async_failure_is_a_result():
    conv = Conversation.new().provider(EchoProvider(fail=True)).user("hi")
    outcome = call_async(conv).result(timeout=5)
    assert not outcome.ok
    assert isinstance(outcome.error, AllRetriesFailedError)
    with pytest.raises(AllRetriesFailedError):
        outcome.unwrap()


def test_call_async_without_provider():
    outcome = call_async(Conversation.new().user("hi")).result(timeout=5)
    assert outcome.error.code == "NO_PROVIDER"


def test_result_timeout():
    conv = Conversation.new().provider(EchoProvider(delay=0.5)).user("hi")
    outcome = call_async(conv).result(timeout=0.01)
    assert isinstance(outcome.error, TaskTimeoutError)


def test_cancel_suppresses_callback():
    calls = []
    conv = Conversation.new().provider(EchoProvider(delay=0.2)).user("hi")
    task = call_async(conv, callback=calls.append)
    cancel(task)
    assert task.cancelled
    assert isinstance(task.result(timeout=1).error, TaskCancelledError)
    time.sleep(0.4)
    assert calls == []


def test_await_all_preserves_order():
    tasks = [
        call_async(Conversation.new().provider(EchoProvider(delay=d)).user(word))
        for d, word in [(0.2, "a"), (0.0, "b"), (0.1, "c")]
    ]
    results = await_all(tasks, timeout=5)
    assert [r.value.last_result for r in results] == ["A", "B", "C"]


def test_stream_async_delivers_chunks_then_done_once():
    events = []
    finished = threading.Event()

    def on_event(event):
        events.append(event)
        if event.kind in ("done", "error"):
            finished.set()

    conv = Conversation.new().provider(ChunkProvider(["he", "ll", "o"])).user("hi")
    task = stream_async(conv, callback=on_event)
    assert finished.wait(5)
    assert task.result(timeout=5).value == "hello"
    assert [e.kind for e in events] == ["chunk", "chunk", "chunk", "done"]
    assert [e.value for e in events if e.kind == "chunk"] == ["he", "ll", "o"]


def test_stream_async_error_has_no_done():
    events = []
    conv = Conversation.new().provider(ChunkProvider(["a", "b", "c"], error_after=1)).user("hi")
    outcome = stream_async(conv, callback=events.append).result(timeout=5)
    assert isinstance(outcome.error, NetworkError)
    assert [e.kind for e in events] == ["chunk", "error"]
    assert events[-1] == StreamEvent("error", error=outcome.error)


def test_stream_async_unsupported_provider_reports_error():
    events = []
    outcome = stream_async(Conversation.new().provider(EchoProvider()).user("hi"), callback=events.append).result(
        timeout=5
    )
    assert outcome.error.code == "STREAMING_NOT_SUPPORTED"
    assert [e.kind for e in events] == ["error"]


def test_stream_async_without_callback_returns_stream():
    conv = Conversation.new().provider(ChunkProvider(["x", "y"])).user("hi")
    stream = stream_async(conv).result(timeout=5).unwrap()
    assert stream.text() == "xy"


def test_callback_exception_does_not_break_stream():
    events = []

    def on_event(event):
        events.append(event.kind)
        raise RuntimeError("callback bug")

    conv = Conversation.new().provider(ChunkProvider(["a", "b"])).user("hi")
    outcome = stream_async(conv, callback=on_event).result(timeout=5)
    assert outcome.value == "ab"
    assert events == ["chunk", "chunk", "done"]


def test_parallel_map_limits_concurrency_and_keeps_order():
    lock = threading.Lock()
    state = {"running": 0, "max": 0}

    def work(n):
        with lock:
            state["running"] += 1
            state["max"] = max(state["max"], state["running"])
        time.sleep(0.05)
        with lock:
            state["running"] -= 1
        return n * n

    results = parallel_map(range(10), work, max_concurrency=3, timeout=5)
    assert results == [n * n for n in range(10)]
    assert state["max"] <= 3


def test_parallel_map_isolates_failures():
    def work(n):
        if n == 2:
            raise ValueError("bad input")
        return n

    results = parallel_map([1, 2, 3], work, max_concurrency=2, timeout=5)
    assert results[0] == 1
    assert results[2] == 3
    assert isinstance(results[1], TaskFailure)
    assert results[1].reason == "error"
    assert isinstance(results[1].error, ValueError)


def test_parallel_map_timeout():
    def work(n):
        if n == 0:
            time.sleep(1.0)
        return n

    results = parallel_map([0, 1], work, max_concurrency=2, timeout=0.2)
    assert results[0] == TaskFailure("timeout")
    assert results[1] == 1


def test_parallel_map_empty():
    assert parallel_map([], lambda x: x) == []
