"""Rendering: frame capture, encoding and publishing."""

from .capture import (
    BrowserPool,
    BrowserSession,
    FrameCapturer,
    TimelineNotFoundError,
    frame_count,
    frame_filename,
    frame_timestamps,
)
from .encoder import EncodeError, VideoEncoder
from .storage import LocalStorage, R2Storage, build_storage, video_key

__all__ = [
    "BrowserPool",
    "BrowserSession",
    "FrameCapturer",
    "TimelineNotFoundError",
    "frame_count",
    "frame_filename",
    "frame_timestamps",
    "EncodeError",
    "VideoEncoder",
    "LocalStorage",
    "R2Storage",
    "build_storage",
    "video_key",
]
