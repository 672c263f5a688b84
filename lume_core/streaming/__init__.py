"""Streaming utilities (SSE frame parsing and text-delta streams)."""

from .sse import DONE, TextStream, normalize_stream, parse_sse_frame

__all__ = ["DONE", "TextStream", "normalize_stream", "parse_sse_frame"]
