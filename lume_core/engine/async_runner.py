"""异步执行层。

在编排层之上提供三种原语：

- call_async / stream_async：把一轮调用提交到线程池，返回 AsyncTask 句柄；
  可选回调在工作线程中被调用。
- 流式回调：每个增量一次 StreamEvent("chunk")，结束时恰好一次
  StreamEvent("done")；失败时只投递一次 StreamEvent("error")，不再有 done。
  同一个流只有一个消费线程，因此回调严格有序。
- parallel_map：限制并发数地对一组输入执行函数，结果按输入顺序返回，
  单个失败或超时以 TaskFailure 占位，不影响其他输入。

工作线程中的异常与取消都会转换为 CallResult，调用方不需要为异步路径单独处理异常；
需要异常语义时调用 CallResult.unwrap()。

取消只保证不再向调用方投递结果，已经发出的网络请求不一定立即停止。
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
import threading
import time
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

from lume_core.config.settings import settings
from lume_core.domain.conversation import Conversation
from lume_core.domain.exceptions import TaskCancelledError, TaskTimeoutError
from lume_core.domain.results import CallResult, StreamEvent, TaskFailure
from lume_core.engine import orchestrator
from lume_core.infrastructure.logging.logger import logger

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CONCURRENCY = 5

_executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def default_executor() -> concurrent.futures.ThreadPoolExecutor:
    """进程内共享的线程池，首次使用时创建。"""

    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=getattr(settings, "async_max_workers", 8),
                thread_name_prefix="lume-async",
            )
        return _executor


class AsyncTask:
    """异步任务句柄。"""

    def __init__(self, future: "concurrent.futures.Future[CallResult]", cancel_event: threading.Event):
        self._future = future
        self._cancel_event = cancel_event

    def result(self, timeout: Optional[float] = None) -> CallResult:
        """等待结果。不会抛出异常：取消与超时同样以 CallResult 返回。"""

        if self._cancel_event.is_set():
            return CallResult.failure(_cancelled())
        try:
            return self._future.result(timeout=timeout)
        except concurrent.futures.CancelledError:
            return CallResult.failure(_cancelled())
        except concurrent.futures.TimeoutError:
            return CallResult.failure(
                TaskTimeoutError(code="TASK_TIMEOUT", message=f"task did not finish within {timeout}s")
            )

    def cancel(self) -> None:
        """放弃任务：未开始的不再执行，执行中的不再投递结果与回调。"""

        self._cancel_event.set()
        self._future.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._future.done()


def call_async(
    conv: Conversation,
    callback: Optional[Callable[[CallResult], Any]] = None,
    executor: Optional[concurrent.futures.Executor] = None,
) -> AsyncTask:
    """异步执行一轮对话，完成后（若未取消）把 CallResult 交给 callback。"""

    sync_conv = conv.without_options("async", "callback")

    def work(cancel_event: threading.Event) -> CallResult:
        if cancel_event.is_set():
            return CallResult.failure(_cancelled())
        try:
            result = CallResult.success(orchestrator.call_sync(sync_conv))
        except Exception as e:  # noqa: BLE001 - 异步层需要把异常转换为结果
            result = CallResult.failure(e)
        if callback is not None and not cancel_event.is_set():
            _deliver(callback, result)
        return result

    return _submit(work, executor)


def stream_async(
    conv: Conversation,
    callback: Optional[Callable[[StreamEvent], Any]] = None,
    executor: Optional[concurrent.futures.Executor] = None,
) -> AsyncTask:
    """异步打开流式调用。

    无回调时结果值为 TextStream，由调用方继续消费；
    有回调时在工作线程中逐块投递，结果值为拼接后的完整文本。
    """

    def work(cancel_event: threading.Event) -> CallResult:
        if cancel_event.is_set():
            return CallResult.failure(_cancelled())
        try:
            text_stream = orchestrator.stream(conv)
        except Exception as e:  # noqa: BLE001
            if callback is not None:
                _deliver(callback, StreamEvent("error", error=e))
            return CallResult.failure(e)
        if callback is None:
            return CallResult.success(text_stream)

        pieces: List[str] = []
        try:
            with text_stream:
                for chunk in text_stream:
                    if cancel_event.is_set():
                        return CallResult.failure(_cancelled())
                    _deliver(callback, StreamEvent("chunk", value=chunk))
                    pieces.append(chunk)
        except Exception as e:  # noqa: BLE001
            _deliver(callback, StreamEvent("error", error=e))
            return CallResult.failure(e)
        _deliver(callback, StreamEvent("done"))
        return CallResult.success("".join(pieces))

    return _submit(work, executor)


def cancel(task: AsyncTask) -> None:
    task.cancel()


def await_all(tasks: Sequence[AsyncTask], timeout: float = DEFAULT_TIMEOUT) -> List[CallResult]:
    """等待多个任务，所有任务共享同一个截止时间。"""

    deadline = time.monotonic() + timeout
    return [t.result(timeout=max(deadline - time.monotonic(), 0.0)) for t in tasks]


def parallel_map(
    items: Iterable[T],
    func: Callable[[T], R],
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Any]:
    """并发执行 func，最多 max_concurrency 个同时运行。

    timeout 从单个输入真正开始执行时计时。排队中的输入最多等待
    ``timeout * 所在批次序号`` 才开始，否则同样记为超时。

    Returns:
        与输入顺序一致的列表，元素为 func 的返回值或 TaskFailure。
    """

    inputs = list(items)
    if not inputs:
        return []
    workers = max(1, min(int(max_concurrency), len(inputs)))
    started_at: List[Optional[float]] = [None] * len(inputs)
    start_events = [threading.Event() for _ in inputs]

    def run(index: int, item: T) -> R:
        started_at[index] = time.monotonic()
        start_events[index].set()
        return func(item)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lume-map")
    batch_start = time.monotonic()
    results: List[Any] = []
    try:
        futures = [executor.submit(run, i, item) for i, item in enumerate(inputs)]
        for i, future in enumerate(futures):
            start_deadline = batch_start + timeout * math.ceil((i + 1) / workers)
            if not start_events[i].wait(max(start_deadline - time.monotonic(), 0.0)):
                future.cancel()
                results.append(TaskFailure("timeout"))
                continue
            remaining = (started_at[i] or batch_start) + timeout - time.monotonic()
            done, _ = concurrent.futures.wait([future], timeout=max(remaining, 0.0))
            if not done:
                future.cancel()
                results.append(TaskFailure("timeout"))
                continue
            error = future.exception()
            if error is not None:
                results.append(TaskFailure("error", error))
            else:
                results.append(future.result())
    finally:
        # 超时的线程无法强制终止，不等待它们结束
        executor.shutdown(wait=False, cancel_futures=True)
    return results


def _submit(work: Callable[[threading.Event], CallResult], executor: Optional[concurrent.futures.Executor]) -> AsyncTask:
    cancel_event = threading.Event()
    future = (executor or default_executor()).submit(work, cancel_event)
    return AsyncTask(future, cancel_event)


def _deliver(callback: Callable[[Any], Any], payload: Any) -> None:
    try:
        callback(payload)
    except Exception:  # noqa: BLE001 - 回调异常不影响任务结果与后续事件
        logger.log(
            logging.ERROR,
            "Async callback raised",
            exc_info=True,
            extra={"extra": {"callback": getattr(callback, "__name__", repr(callback))}},
        )


def _cancelled() -> TaskCancelledError:
    return TaskCancelledError(code="TASK_CANCELLED", message="task was cancelled")
