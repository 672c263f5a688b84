"""媒体内容解析。

把用户传入的图片/音频内容统一成 Provider 能直接使用的字符串：

- data URL：原样返回。
- http(s) URL：原样返回，由 Provider 自行拉取。
- 本地文件：读取并编码为 ``data:<mime>;base64,<payload>``。
- 其他字符串（包括已存在但不是图片/音频扩展名的路径）：视为原始内容，原样返回。
"""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path

from lume_core.domain.exceptions import MediaError

SUPPORTED_IMAGE_TYPES = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"})
SUPPORTED_AUDIO_TYPES = frozenset({".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"})

# 原始 base64 可能很长，超过这个长度不再当作路径去探测文件系统
_MAX_PATH_LENGTH = 4096


def is_image_file(path: str) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_IMAGE_TYPES


def is_audio_file(path: str) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_AUDIO_TYPES


def is_data_url(content: str) -> bool:
    return content.startswith("data:")


def is_remote_url(content: str) -> bool:
    return content.startswith("http://") or content.startswith("https://")


def guess_mime_type(path: str) -> str:
    mime, _ = mimetypes.guess_type(path)
    return mime or "application/octet-stream"


def read_file(path: str) -> str:
    """读取本地图片/音频并编码为 data URL。

    Raises:
        MediaError: 文件不存在、类型不支持或读取失败。
    """

    file_path = Path(path).expanduser()
    if not (is_image_file(path) or is_audio_file(path)):
        raise MediaError(code="UNSUPPORTED_FILE_TYPE", message=f"unsupported file type: {file_path.suffix or path}")
    if not file_path.is_file():
        raise MediaError(code="FILE_NOT_FOUND", message=f"file not found: {path}")
    try:
        data = file_path.read_bytes()
    except OSError as e:
        raise MediaError(code="FILE_UNREADABLE", message=f"cannot read {path}: {e}")
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{guess_mime_type(str(file_path))};base64,{encoded}"


def process_content(content: str) -> str:
    """按内容形态决定是否需要读取文件。"""

    if not isinstance(content, str) or not content:
        raise MediaError(code="EMPTY_CONTENT", message="media content must be a non-empty string")
    if is_data_url(content) or is_remote_url(content):
        return content
    if len(content) > _MAX_PATH_LENGTH:
        return content
    candidate = Path(content).expanduser()
    try:
        exists = candidate.exists()
    except OSError:
        exists = False
    is_media = is_image_file(content) or is_audio_file(content)
    if exists and is_media:
        return read_file(content)
    if is_media:
        raise MediaError(code="FILE_NOT_FOUND", message=f"file not found: {content}")
    return content
