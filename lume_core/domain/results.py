"""异步层使用的结果结构。

同步调用直接返回 Conversation 或抛出 LumeError；
异步任务把两种情况都折叠进 CallResult，调用方用 unwrap() 即可回到同步写法。
"""

from dataclasses import dataclass
from typing import Any, Literal, Optional


@dataclass(frozen=True)
class CallResult:
    """一次执行的结果：value 与 error 二选一。"""

    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """成功时返回 value，失败时抛出原始错误。"""

        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: Any) -> "CallResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> "CallResult":
        return cls(error=error)


@dataclass(frozen=True)
class TaskFailure:
    """parallel_map 中单个输入失败时放在对应位置的标记值。

    reason: "error"（函数抛出异常）或 "timeout"（超时）。
    """

    reason: Literal["error", "timeout"]
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class StreamEvent:
    """流式回调事件。

    kind:
        - "chunk": 一段文本增量，value 为字符串。
        - "done": 流正常结束，每个流只投递一次。
        - "error": 打开或读取流失败，error 为异常，之后不会再有 done。
    """

    kind: Literal["chunk", "done", "error"]
    value: Optional[str] = None
    error: Optional[BaseException] = None
