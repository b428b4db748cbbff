"""Thread-safe keyed stores for video requests and rendered videos.

A request's history is the list of immutable VideoRequest values it went
through, newest last, trimmed to the most recent ``max_history`` versions.
Reads return the newest value. Writes are serialized with a lock shared by
the HTTP threads and the worker event loop.

With a path, every stored value is also appended as one line to a JSON lines
log. Appends are handed to a background writer thread, so a status change
costs one record and never waits on the disk. On start the log is replayed
and compacted to the retained history.
"""

import atexit
import json
import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Optional

from ezanim.config import REQUEST_HISTORY_LIMIT
from ezanim.models import Video, VideoRequest

logger = logging.getLogger(__name__)


class RequestNotFoundError(LookupError):
    """Raised when a request id is unknown to the store."""


# ==================== JSON LINES LOG ====================


class JsonLinesLog:
    """Append-only JSON lines file written from a background thread."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._pending: queue.Queue = queue.Queue()
        self._writer: Optional[threading.Thread] = None
        self._writer_lock = threading.Lock()

    def read(self) -> list[dict]:
        if not self.path.exists():
            return []
        records = []
        with open(self.path) as f:
            for n, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    # A crash mid-append leaves at most one partial line
                    logger.warning("Skipping unreadable line %d of %s", n, self.path)
        return records

    def rewrite(self, records: list[dict]) -> None:
        """Replace the file with *records*. Only safe before any append."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            for record in records:
                f.write(json.dumps(record) + "\n")
        os.replace(tmp, self.path)

    def append(self, record: dict) -> None:
        self._ensure_writer()
        self._pending.put(record)

    def sync(self) -> None:
        """Block until every appended record is on disk."""
        if self._writer is not None:
            self._pending.join()

    close = sync

    def _ensure_writer(self) -> None:
        with self._writer_lock:
            if self._writer is not None:
                return
            self._writer = threading.Thread(
                target=self._write_loop, name=f"ezanim-log-{self.path.stem}", daemon=True
            )
            self._writer.start()
            atexit.register(self.sync)

    def _write_loop(self) -> None:
        while True:
            batch = [self._pending.get()]
            while True:
                try:
                    batch.append(self._pending.get_nowait())
                except queue.Empty:
                    break
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a") as f:
                    for record in batch:
                        f.write(json.dumps(record) + "\n")
            except (OSError, TypeError, ValueError) as e:
                logger.error("Could not append %d record(s) to %s: %s", len(batch), self.path, e)
            finally:
                for _ in batch:
                    self._pending.task_done()


# ==================== REQUESTS ====================


class RequestStore:
    """Versioned map of request id -> VideoRequest history."""

    def __init__(self, path: Optional[str] = None, max_history: int = REQUEST_HISTORY_LIMIT):
        self._lock = threading.RLock()
        self._history: dict[str, list[VideoRequest]] = {}
        self.max_history = max(1, max_history)
        self._log = JsonLinesLog(path) if path else None
        if self._log is not None and self._log.path.exists():
            self._load()

    @property
    def path(self) -> Optional[Path]:
        return self._log.path if self._log else None

    def add(self, request: VideoRequest) -> VideoRequest:
        with self._lock:
            if request.id in self._history:
                raise ValueError(f"VideoRequest {request.id} already exists")
            self._history[request.id] = [request]
            self._persist(request)
        return request

    def get(self, request_id: str) -> VideoRequest:
        with self._lock:
            versions = self._history.get(request_id)
            if not versions:
                raise RequestNotFoundError(f"VideoRequest {request_id} not found")
            return versions[-1]

    def find(self, request_id: str) -> Optional[VideoRequest]:
        try:
            return self.get(request_id)
        except RequestNotFoundError:
            return None

    def update(
        self,
        request_id: str,
        change: Callable[[VideoRequest], VideoRequest],
    ) -> VideoRequest:
        """Apply *change* to the newest version and store its result.

        The read-modify-write happens under the store lock, so two stages
        updating different fields of the same request never lose each
        other's writes. If *change* raises, nothing is stored.
        """
        with self._lock:
            current = self.get(request_id)
            updated = change(current)
            if updated is current:
                return current
            if updated.id != request_id:
                raise ValueError("An update cannot change the request id")
            self._remember(updated)
            self._persist(updated)
            return updated

    def history(self, request_id: str) -> list[VideoRequest]:
        """Retained versions of *request_id*, oldest first."""
        with self._lock:
            if request_id not in self._history:
                raise RequestNotFoundError(f"VideoRequest {request_id} not found")
            return list(self._history[request_id])

    def all(self) -> list[VideoRequest]:
        with self._lock:
            return [versions[-1] for versions in self._history.values()]

    def sync(self) -> None:
        if self._log is not None:
            self._log.sync()

    close = sync

    def _remember(self, request: VideoRequest) -> None:
        versions = self._history.setdefault(request.id, [])
        versions.append(request)
        if len(versions) > self.max_history:
            del versions[: len(versions) - self.max_history]

    def _persist(self, request: VideoRequest) -> None:
        if self._log is not None:
            self._log.append(request.to_dict())

    def _load(self) -> None:
        for record in self._log.read():
            self._remember(VideoRequest.from_dict(record))
        self._log.rewrite([v.to_dict() for versions in self._history.values() for v in versions])
        logger.info("Loaded %d video requests from %s", len(self._history), self._log.path)


# ==================== VIDEOS ====================


class VideoStore:
    """Rendered videos keyed by request id, one entry per rendered version."""

    def __init__(self, path: Optional[str] = None):
        self._lock = threading.RLock()
        self._videos: dict[str, list[Video]] = {}
        self._log = JsonLinesLog(path) if path else None
        if self._log is not None:
            for record in self._log.read():
                video = Video.from_dict(record)
                self._videos.setdefault(video.video_request_id, []).append(video)

    def add(self, video: Video) -> Video:
        with self._lock:
            videos = self._videos.setdefault(video.video_request_id, [])
            if any(v.request_version == video.request_version for v in videos):
                raise ValueError(
                    f"Version {video.request_version} of {video.video_request_id} "
                    "already has a video"
                )
            videos.append(video)
            if self._log is not None:
                self._log.append(video.to_dict())
        return video

    def get_by_request(self, request_id: str) -> Optional[Video]:
        """Return the most recent video rendered for *request_id*."""
        with self._lock:
            videos = self._videos.get(request_id)
            return videos[-1] if videos else None

    def list_for_request(self, request_id: str) -> list[Video]:
        with self._lock:
            return list(self._videos.get(request_id, []))

    def sync(self) -> None:
        if self._log is not None:
            self._log.sync()

    close = sync
