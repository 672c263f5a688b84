"""SSE 流式解析。

把厂商的 Server-Sent-Events 帧转换成统一的文本增量序列：

1. 每个帧按行拆分，只处理以 ``data:`` 开头的行。
2. 去掉前缀后尝试 JSON 解码；``[DONE]`` 转为 DONE 哨兵，表示流结束。
3. 空行、注释行、无法解码的行返回 None，直接丢弃（不代表流结束）。
4. 解码出的对象交给厂商提取函数取出文本增量，取不到（None）同样跳过。

结果是惰性的单遍迭代器：消费方拉取一次才读取下一帧，读完即关闭连接，
不能重新开始，重新迭代需要重新发起请求。
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Iterator, List, Optional, Union

DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


class _Done:
    """流结束哨兵，与 None（本帧无数据）区分开。"""

    _instance: Optional["_Done"] = None

    def __new__(cls) -> "_Done":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DONE"


DONE = _Done()

Frame = Union[str, bytes]
Extractor = Callable[[Any], Optional[str]]


def parse_sse_line(line: str) -> Any:
    """解析单行，返回 JSON 对象、DONE 或 None。"""

    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None
    data = line[len(DATA_PREFIX):].strip()
    if not data:
        return None
    if data == DONE_TOKEN:
        return DONE
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return None


def parse_sse_frame(frame: Frame) -> List[Any]:
    """解析一个帧中的所有 data 行，丢弃 None。"""

    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")
    events = []
    for line in frame.splitlines():
        parsed = parse_sse_line(line)
        if parsed is not None:
            events.append(parsed)
    return events


def dig(obj: Any, *path: Union[str, int]) -> Any:
    """沿着 key / 下标路径取值，任何一步缺失都返回 None。"""

    current = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def normalize_stream(frames: Iterable[Frame], extractor: Extractor) -> Iterator[str]:
    for frame in frames:
        for event in parse_sse_frame(frame):
            if event is DONE:
                return
            delta = extractor(event)
            if delta is not None:
                yield delta


class TextStream:
    """单遍、只进的文本增量迭代器。

    on_close 在流耗尽、显式 close() 或退出 with 块时调用一次，
    用于关闭底层 HTTP 响应与客户端。
    """

    def __init__(self, deltas: Iterable[str], on_close: Optional[Callable[[], None]] = None):
        self._deltas = iter(deltas)
        self._on_close = on_close
        self._closed = False

    def __iter__(self) -> "TextStream":
        return self

    def __next__(self) -> str:
        if self._closed:
            raise StopIteration
        try:
            return next(self._deltas)
        except BaseException:
            # 耗尽或出错都释放连接
            self.close()
            raise

    def __enter__(self) -> "TextStream":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        closer = getattr(self._deltas, "close", None)
        if callable(closer):
            closer()
        if self._on_close is not None:
            self._on_close()

    def text(self) -> str:
        """读完剩余增量并拼接。"""

        return "".join(self)


def from_frames(frames: Iterable[Frame], extractor: Extractor, on_close: Optional[Callable[[], None]] = None) -> TextStream:
    return TextStream(normalize_stream(frames, extractor), on_close=on_close)
