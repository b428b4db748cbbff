"""Request-accepting operations shared by the HTTP server and the CLI."""

import logging
import os
from typing import Optional

from ezanim import config
from ezanim.audio_sync import Transcriber
from ezanim.clients import AnthropicClient, ElevenLabsClient
from ezanim.dispatch import Dispatcher, Job
from ezanim.generation import (
    AnimationAuthor,
    AssetSearch,
    Critic,
    Judge,
    ParsePolicy,
    ScriptWriter,
)
from ezanim.models import Video, VideoRequest
from ezanim.notify import PipelineNotifier
from ezanim.pipeline import VideoPipeline
from ezanim.qa_loop import RefinementLoop
from ezanim.render import BrowserPool, FrameCapturer, VideoEncoder, build_storage
from ezanim.status import (
    RENDERABLE_STATUSES,
    TERMINAL_STATUSES,
    InvalidTransitionError,
    VideoRequestStatus,
    ensure_renderable,
)
from ezanim.store import RequestStore, VideoStore

logger = logging.getLogger(__name__)


class VideoService:
    """Validates requests, guards transitions and hands work to the dispatcher."""

    def __init__(self, store: RequestStore, videos: VideoStore, dispatcher: Optional[Dispatcher]):
        self.store = store
        self.videos = videos
        self.dispatcher = dispatcher

    def submit(self, prompt: str, aspect_ratio: str = config.DEFAULT_ASPECT_RATIO) -> tuple[VideoRequest, Job]:
        """Create a request and queue its creation job.

        Raises:
            ValueError: prompt too short or unsupported aspect ratio.
            RuntimeError: the dispatcher is not accepting jobs; the request
                is stored as FAILED.
        """
        request = self.store.add(VideoRequest.create(prompt, aspect_ratio))
        try:
            job = self.dispatcher.enqueue(request.id, "create")
        except RuntimeError:
            self.store.update(request.id, lambda r: r.with_status(VideoRequestStatus.FAILED))
            raise
        logger.info("Accepted video request %s (%s)", request.id, aspect_ratio)
        return request, job

    def get_request(self, request_id: str) -> VideoRequest:
        return self.store.get(request_id)

    def get_preview_html(self, request_id: str) -> Optional[str]:
        """Current markup, or None while the first draft is still being written."""
        return self.store.get(request_id).html_content

    def trigger_render(self, request_id: str) -> Job:
        """Move a renderable request to RENDERING and queue the render job.

        Raises:
            RequestNotFoundError: unknown id.
            NotReadyForRenderError: status, markup or duration not ready;
                nothing is changed.
            RuntimeError: the dispatcher is not accepting jobs; nothing is
                changed.
        """
        jobs = []

        # Queued under the store lock: the worker cannot read the request
        # before RENDERING is stored, and a refused job stores nothing.
        def start(request):
            ensure_renderable(request)
            rendering = request.with_status(VideoRequestStatus.RENDERING)
            jobs.append(self.dispatcher.enqueue(request_id, "render"))
            return rendering

        self.store.update(request_id, start)
        return jobs[0]

    def request_revision(self, request_id: str, critique: str) -> Job:
        """Queue a fix of the current markup against a user critique.

        Raises:
            ValueError: empty critique.
            InvalidTransitionError: the request has no reviewable markup.
        """
        critique = (critique or "").strip()
        if not critique:
            raise ValueError("Critique must not be empty")
        request = self.store.get(request_id)
        if request.status not in RENDERABLE_STATUSES or not request.html_content:
            raise InvalidTransitionError(
                f"VideoRequest {request_id} cannot be revised in status {request.status.value}"
            )
        return self.dispatcher.enqueue(request_id, "refine", {"critique": critique})

    def get_video(self, request_id: str) -> Optional[Video]:
        self.store.get(request_id)
        return self.videos.get_by_request(request_id)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.dispatcher.get_job(job_id)

    def close(self) -> None:
        """Wait for pending store writes."""
        self.store.close()
        self.videos.close()

    def recover_interrupted(self) -> int:
        """Fail requests that a previous process left mid-job.

        Returns:
            Number of requests marked FAILED
        """
        interrupted = [
            r for r in self.store.all()
            if r.status not in TERMINAL_STATUSES and r.status not in RENDERABLE_STATUSES
        ]
        for request in interrupted:
            self.store.update(request.id, lambda r: r.with_status(VideoRequestStatus.FAILED))
            logger.warning("Marked interrupted request %s (%s) as FAILED", request.id, request.status.value)
        return len(interrupted)


def pipeline_handlers(pipeline: VideoPipeline) -> dict:
    return {
        "create": lambda job: pipeline.run_creation(job.request_id),
        "refine": lambda job: pipeline.run_revision(job.request_id, job.payload["critique"]),
        "render": lambda job: pipeline.run_render(job.request_id),
    }


def build_pipeline(store: RequestStore, videos: VideoStore, pool: BrowserPool) -> VideoPipeline:
    """Wire the pipeline and its collaborators from configuration."""
    policy = ParsePolicy()
    llm = AnthropicClient()
    author = AnimationAuthor(
        llm,
        model=config.ANIMATION_MODEL,
        asset_search=AssetSearch(config.ASSET_CATALOG_PATH) if config.ASSET_CATALOG_PATH else None,
        asset_results=config.ASSET_RESULTS,
    )
    return VideoPipeline(
        store=store,
        videos=videos,
        script_writer=ScriptWriter(llm, model=config.SCRIPT_MODEL),
        tts=ElevenLabsClient(),
        transcriber=Transcriber(),
        author=author,
        qa_loop=RefinementLoop(
            critic=Critic(llm, model=config.CRITIC_MODEL, policy=policy),
            author=author,
            judge=Judge(llm, model=config.JUDGE_MODEL, policy=policy),
            max_loops=config.MAX_QA_LOOPS,
            policy=policy,
        ),
        capturer=FrameCapturer(pool, fps=config.RENDER_FPS),
        encoder=VideoEncoder(),
        storage=build_storage(config.STORAGE_DRIVER),
        notifier=PipelineNotifier(),
        output_dir=config.VIDEO_OUTPUT_DIR,
        fps=config.RENDER_FPS,
        policy=policy,
    )


def open_stores(store_path: Optional[str] = config.STORE_PATH) -> tuple[RequestStore, VideoStore]:
    """Request and video stores, backed by JSON lines files under *store_path* when set."""
    if not store_path:
        return RequestStore(), VideoStore()
    return (
        RequestStore(os.path.join(store_path, "requests.jsonl")),
        VideoStore(os.path.join(store_path, "videos.jsonl")),
    )


def open_readonly_service(store_path: Optional[str] = config.STORE_PATH) -> VideoService:
    """A service for reads only: no pipeline, no API keys, no dispatcher."""
    store, videos = open_stores(store_path)
    return VideoService(store, videos, dispatcher=None)


def build_service(store_path: Optional[str] = config.STORE_PATH, recover: bool = False) -> VideoService:
    """Build a ready-to-start service. Call ``service.dispatcher.start()`` or
    ``start_in_thread()`` before submitting work.

    Only the process that owns the store should pass *recover*: it fails
    every request still mid-job, including ones another live process is
    working on.
    """
    store, videos = open_stores(store_path)
    pool = BrowserPool()
    pipeline = build_pipeline(store, videos, pool)
    dispatcher = Dispatcher(
        pipeline_handlers(pipeline),
        creation_workers=config.CREATION_WORKERS,
        render_workers=config.RENDER_WORKERS,
        on_stop=pool.close,
    )
    service = VideoService(store, videos, dispatcher)
    if recover:
        service.recover_interrupted()
    return service
