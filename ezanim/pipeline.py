"""Video Pipeline Orchestrator

STATUS-DRIVEN WORKFLOW:
Each job works on one request id and moves it through the lifecycle in
``ezanim.status``:

1. SCRIPT:     Narration script via the script writer -> refined_prompt
2. AUDIO:      Voiceover via ElevenLabs -> <output>/audio/<id>.mp3
3. TIMING:     Whisper word timestamps -> duration = last word end + 2s
4. DRAFT:      Animation markup timed to the narration -> PREVIEW_READY
5. QA:         Critic / fixer / judge loop -> QA_COMPLETED
6. RENDER:     Seek-and-screenshot capture, ffmpeg encode, upload -> COMPLETED

RULES:
- Every write goes through RequestStore.update, never a stale copy
- Any exception marks the request FAILED and propagates to the dispatcher
- No internal retries
- Local frames and the encoded file are always removed after a render
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from ezanim.audio_sync import build_vtt, compute_duration
from ezanim.config import RENDER_FPS, VIDEO_OUTPUT_DIR
from ezanim.generation.parsing import MalformedResponseError, ParsePolicy
from ezanim.models import Video
from ezanim.render.storage import video_key
from ezanim.status import (
    RENDERABLE_STATUSES,
    InvalidTransitionError,
    VideoRequestStatus,
    is_terminal,
)
from ezanim.store import RequestNotFoundError

logger = logging.getLogger(__name__)

S = VideoRequestStatus


class VideoPipeline:
    """Orchestrates content generation, QA and rendering for video requests."""

    def __init__(
        self,
        store,
        videos,
        script_writer,
        tts,
        transcriber,
        author,
        qa_loop,
        capturer,
        encoder,
        storage,
        notifier=None,
        output_dir: str = VIDEO_OUTPUT_DIR,
        fps: int = RENDER_FPS,
        policy: Optional[ParsePolicy] = None,
    ):
        self.store = store
        self.videos = videos
        self.script_writer = script_writer
        self.tts = tts
        self.transcriber = transcriber
        self.author = author
        self.qa_loop = qa_loop
        self.capturer = capturer
        self.encoder = encoder
        self.storage = storage
        self.notifier = notifier
        self.output_dir = Path(output_dir)
        self.fps = fps
        self.policy = policy or ParsePolicy()

    # ==================== CREATION ====================

    async def run_creation(self, request_id: str):
        """Generate script, audio, timings and markup, then run QA.

        Returns:
            The request after QA
        """
        try:
            request = self.store.get(request_id)
            logger.info("\U0001f3ac Creating video for %s: %s", request_id, request.user_prompt)

            # Phase 1: narration, audio and timing
            self._set_status(request_id, S.GENERATING_SCRIPT)
            script = await self.script_writer.generate_script(request.user_prompt)
            self.store.update(request_id, lambda r: r.with_refined_prompt(script))

            self._set_status(request_id, S.GENERATING_AUDIO)
            audio = await self.tts.synthesize(script)
            audio_path = self._audio_path(request_id)
            audio_path.parent.mkdir(parents=True, exist_ok=True)
            audio_path.write_bytes(audio)
            logger.info("\U0001f399️ Saved narration (%d bytes) to %s", len(audio), audio_path)

            self._set_status(request_id, S.TRANSCRIBING)
            transcript = await self.transcriber.transcribe(audio, filename=audio_path.name)
            duration = compute_duration(transcript.words)
            request = self.store.update(request_id, lambda r: r.with_audio(str(audio_path), duration))
            logger.info("⏱️ Duration %.2fs from %d words", duration, len(transcript.words))

            # Phase 2: first animation draft
            self._set_status(request_id, S.GENERATING_HTML)
            html = await self.author.create(
                request.user_prompt,
                duration,
                build_vtt(transcript.words) if transcript.words else None,
                request.aspect_ratio,
                request.width,
                request.height,
            )
            request = self.store.update(
                request_id, lambda r: r.with_html(html).with_status(S.PREVIEW_READY)
            )
            logger.info("\U0001f440 Preview ready for %s", request_id)
            if self.notifier:
                await self.notifier.notify_preview_ready(request)

            # QA
            result = await self.qa_loop.run(html, request.user_prompt, on_revision=self._revision_saver(request_id))
            request = self.store.update(request_id, lambda r: self._finish_qa(r, result.html))
            logger.info(
                "✅ QA finished for %s after %d iteration(s) (%s)",
                request_id, result.iterations, "approved" if result.approved else "best effort",
            )
            if self.notifier:
                await self.notifier.notify_qa_completed(request, result.approved, result.iterations)
            return request

        except Exception as e:
            await self._fail(request_id, "creation", e)
            raise

    def _revision_saver(self, request_id: str):
        async def save(html: str) -> None:
            self.store.update(request_id, lambda r: r.with_html(html) if r.html_content != html else r)
            logger.info("\U0001f4be Saved QA revision for %s", request_id)
        return save

    @staticmethod
    def _finish_qa(request, html: str):
        if request.html_content != html:
            request = request.with_html(html)
        # A render triggered during QA already moved the request on
        if request.status == S.PREVIEW_READY:
            request = request.with_status(S.QA_COMPLETED)
        return request

    # ==================== REVISION ====================

    async def run_revision(self, request_id: str, critique: str):
        """Apply a user-supplied critique to the current markup.

        A request that moved on (render started, failed) since the revision
        was queued is left untouched.
        """
        request = self.store.get(request_id)
        if request.status not in RENDERABLE_STATUSES:
            logger.warning(
                "Skipping revision of %s: status is now %s", request_id, request.status.value
            )
            return request
        try:
            logger.info("\U0001f501 Revising %s: %s", request_id, critique[:200])
            try:
                html = await self.author.refine(request.html_content, critique)
            except MalformedResponseError as e:
                if self.policy.strict:
                    raise
                logger.warning("Revision returned no HTML document (%s), keeping previous markup", e)
                return request
            return self.store.update(request_id, lambda r: r.with_html(html) if r.html_content != html else r)

        except Exception as e:
            await self._fail(request_id, "revision", e)
            raise

    # ==================== RENDER ====================

    async def run_render(self, request_id: str) -> Video:
        """Capture, encode and publish the latest markup of a RENDERING request.

        Raises:
            InvalidTransitionError: the request is not RENDERING; it is left
                untouched.
        """
        work_dir = self.output_dir / "renders" / request_id
        frames_dir = work_dir / "frames"
        # Latest markup, including anything QA wrote after the trigger
        request = self.store.get(request_id)
        if request.status != S.RENDERING:
            raise InvalidTransitionError(
                f"VideoRequest {request_id} is {request.status.value}, expected RENDERING"
            )
        try:
            output_path = work_dir / f"v{request.version}.mp4"
            logger.info(
                "\U0001f3a5 Rendering %s v%d (%dx%d, %.2fs @ %dfps)",
                request_id, request.version, request.width, request.height, request.duration, self.fps,
            )

            try:
                frames = await self.capturer.capture(
                    request.html_content,
                    request.duration,
                    request.width,
                    request.height,
                    frames_dir,
                    fps=self.fps,
                )
                await self.encoder.encode(
                    frames_dir,
                    output_path,
                    self.fps,
                    request.width,
                    request.height,
                    audio_path=request.audio_path,
                    frame_total=len(frames),
                )
                key = video_key(request_id, request.version)
                await self.storage.upload(output_path, key)
                url = await self.storage.public_url(key)
            finally:
                self._cleanup(work_dir)

            video = self.videos.add(Video.create(request, url=url, storage_key=key, fps=self.fps))
            request = self.store.update(request_id, lambda r: r.with_status(S.COMPLETED))
            logger.info("✅ Video ready for %s: %s", request_id, url)
            if self.notifier:
                await self.notifier.notify_completed(request, video)
            return video

        except Exception as e:
            await self._fail(request_id, "render", e)
            raise

    # ==================== HELPERS ====================

    def _audio_path(self, request_id: str) -> Path:
        return self.output_dir / "audio" / f"{request_id}.mp3"

    def _set_status(self, request_id: str, status: VideoRequestStatus):
        logger.info("   %s -> %s", request_id, status.value)
        return self.store.update(request_id, lambda r: r.with_status(status))

    @staticmethod
    def _cleanup(work_dir: Path) -> None:
        try:
            shutil.rmtree(work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove render files in %s: %s", work_dir, e)

    async def _fail(self, request_id: str, stage: str, error: Exception) -> None:
        logger.error("❌ %s failed for %s: %s", stage.capitalize(), request_id, error)
        try:
            self.store.update(
                request_id,
                lambda r: r if is_terminal(r.status) else r.with_status(S.FAILED),
            )
        except RequestNotFoundError:
            return
        if self.notifier:
            await self.notifier.notify_failed(request_id, stage, str(error))
