"""Background job dispatch for the video pipeline.

Two named queues are drained by their own worker pools:

    creation  <- "create" (script/audio/draft/QA) and "refine" jobs
    render    <- "render" jobs

A worker holds a per-request lock for the whole job, so jobs for the same
request run one at a time in the order they reached the lock, even across
queues. Jobs for different requests run concurrently up to the pool sizes.

The dispatcher runs either inside the caller's event loop (``await start()``)
or on a private loop in a daemon thread (``start_in_thread()``), which is how
the Flask server uses it. ``enqueue`` is safe to call from any thread.
"""

import asyncio
import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from ezanim.config import CREATION_WORKERS, JOB_RETENTION, RENDER_WORKERS

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


QUEUE_FOR_KIND = {
    "create": "creation",
    "refine": "creation",
    "render": "render",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    request_id: str
    kind: str
    payload: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: JobState = JobState.QUEUED
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def queue(self) -> str:
        return QUEUE_FOR_KIND[self.kind]

    @property
    def done(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "queue": self.queue,
            "kind": self.kind,
            "requestId": self.request_id,
            "state": self.state.value,
            "error": self.error,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


Handler = Callable[[Job], Awaitable[object]]


class Dispatcher:
    """Queues, worker pools and per-request serialization."""

    def __init__(
        self,
        handlers: dict[str, Handler],
        creation_workers: int = CREATION_WORKERS,
        render_workers: int = RENDER_WORKERS,
        on_stop: Optional[Callable[[], Awaitable[None]]] = None,
        job_retention: int = JOB_RETENTION,
    ):
        unknown = set(handlers) - set(QUEUE_FOR_KIND)
        if unknown:
            raise ValueError(f"Unknown job kinds: {sorted(unknown)}")
        self.handlers = handlers
        self.pool_sizes = {"creation": creation_workers, "render": render_workers}
        self.on_stop = on_stop
        self.job_retention = max(0, job_retention)

        self._jobs: dict[str, Job] = {}
        self._finished: deque = deque()
        self._jobs_lock = threading.Lock()
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: list[asyncio.Task] = []
        self._request_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return bool(self._workers)

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        """Start worker pools on the running event loop."""
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        for name, size in self.pool_sizes.items():
            queue = asyncio.Queue()
            self._queues[name] = queue
            for n in range(max(1, size)):
                task = asyncio.create_task(self._worker(name, queue), name=f"{name}-worker-{n}")
                self._workers.append(task)
        logger.info(
            "Dispatcher started (creation workers: %d, render workers: %d)",
            self.pool_sizes["creation"], self.pool_sizes["render"],
        )

    async def stop(self) -> None:
        """Cancel workers and run the shutdown hook. Queued jobs are dropped."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        if self.on_stop is not None:
            await self.on_stop()
        logger.info("Dispatcher stopped")

    def start_in_thread(self) -> None:
        """Run the dispatcher on its own event loop in a daemon thread."""
        if self._thread is not None:
            return
        loop = asyncio.new_event_loop()
        ready = threading.Event()

        def run():
            asyncio.set_event_loop(loop)
            loop.run_until_complete(self.start())
            ready.set()
            try:
                loop.run_forever()
            finally:
                loop.close()

        self._thread = threading.Thread(target=run, name="ezanim-dispatch", daemon=True)
        self._thread.start()
        ready.wait()

    def stop_thread(self, timeout: float = 30.0) -> None:
        if self._thread is None or self._loop is None:
            return
        future = asyncio.run_coroutine_threadsafe(self.stop(), self._loop)
        future.result(timeout=timeout)
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
        self._thread = None

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        for queue in self._queues.values():
            await queue.join()

    # ==================== JOBS ====================

    def enqueue(self, request_id: str, kind: str, payload: Optional[dict] = None) -> Job:
        """Queue a job and return its handle immediately."""
        if kind not in self.handlers:
            raise ValueError(f"No handler registered for job kind {kind!r}")
        if not self.running or self._loop is None:
            raise RuntimeError("Dispatcher is not running")

        job = Job(request_id=request_id, kind=kind, payload=dict(payload or {}))
        with self._jobs_lock:
            self._jobs[job.id] = job

        queue = self._queues[job.queue]
        try:
            in_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            in_loop = False
        if in_loop:
            queue.put_nowait(job)
        else:
            self._loop.call_soon_threadsafe(queue.put_nowait, job)

        logger.info("Queued %s job %s for %s on %s", kind, job.id, request_id, job.queue)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    # ==================== WORKERS ====================

    async def _worker(self, name: str, queue: asyncio.Queue) -> None:
        while True:
            job = await queue.get()
            try:
                await self._run(job)
            finally:
                queue.task_done()

    async def _run(self, job: Job) -> None:
        lock = self._acquire_lock_ref(job.request_id)
        try:
            async with lock:
                job.state = JobState.ACTIVE
                job.started_at = _now()
                logger.info("Started %s job %s for %s", job.kind, job.id, job.request_id)
                try:
                    await self.handlers[job.kind](job)
                except Exception as e:
                    job.state = JobState.FAILED
                    job.error = str(e) or e.__class__.__name__
                    logger.error("%s job %s failed: %s", job.kind, job.id, job.error)
                else:
                    job.state = JobState.COMPLETED
                    logger.info("Completed %s job %s for %s", job.kind, job.id, job.request_id)
                finally:
                    job.finished_at = _now()
                    self._retire(job)
        finally:
            self._release_lock_ref(job.request_id)

    def _retire(self, job: Job) -> None:
        # Only the newest finished handles stay visible to get_job
        with self._jobs_lock:
            self._finished.append(job.id)
            while len(self._finished) > self.job_retention:
                self._jobs.pop(self._finished.popleft(), None)

    def _acquire_lock_ref(self, request_id: str) -> asyncio.Lock:
        lock = self._request_locks.get(request_id)
        if lock is None:
            lock = self._request_locks[request_id] = asyncio.Lock()
        self._lock_users[request_id] = self._lock_users.get(request_id, 0) + 1
        return lock

    def _release_lock_ref(self, request_id: str) -> None:
        remaining = self._lock_users[request_id] - 1
        if remaining:
            self._lock_users[request_id] = remaining
        else:
            del self._lock_users[request_id]
            del self._request_locks[request_id]
