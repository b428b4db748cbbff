"""Frame-accurate capture of an HTML animation with headless Chromium.

The page is never played in real time. The capture flag is set before any
page script runs, the exposed timeline is paused at zero, and every frame is
produced by seeking the timeline to ``i / fps`` seconds and taking a
screenshot. Frame count and frame times depend only on duration and fps, so
a slow machine produces the same frames as a fast one.
"""

import asyncio
import logging
import math
from pathlib import Path
from typing import Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ezanim.config import (
    CAPTURE_FLAG,
    CAPTURE_SETTLE_MS,
    PAGE_LOAD_TIMEOUT_MS,
    RENDER_FPS,
    TIMELINE_GLOBAL,
    TIMELINE_WAIT_MS,
)

logger = logging.getLogger(__name__)


class TimelineNotFoundError(RuntimeError):
    """The page never exposed a seekable timeline within the wait bound."""


def frame_count(duration: float, fps: int) -> int:
    """Number of frames for *duration* seconds at *fps*: ceil(duration * fps).

    The product is rounded first so 1.1 * 30 counts as 33 frames, not 34.
    """
    if duration <= 0:
        raise ValueError(f"duration must be positive, got {duration}")
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    return math.ceil(round(duration * fps, 6))


def frame_timestamps(duration: float, fps: int) -> list[float]:
    """Timeline positions in milliseconds, one per frame: i / fps * 1000."""
    return [i / fps * 1000 for i in range(frame_count(duration, fps))]


def frame_filename(index: int) -> str:
    return f"frame_{index:06d}.png"


# ==================== BROWSER SANDBOX ====================


class BrowserSession:
    """One page in the shared browser, owned by a single capture call."""

    def __init__(self, context, page, work_dir: Path):
        self._context = context
        self.page = page
        self.work_dir = Path(work_dir)

    async def set_flag(self, name: str = CAPTURE_FLAG, value: bool = True) -> None:
        """Define ``window[name]`` before any document script runs."""
        await self.page.add_init_script(f"window.{name} = {'true' if value else 'false'};")

    async def load(self, html: str, timeout_ms: int = PAGE_LOAD_TIMEOUT_MS) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        document = self.work_dir / "index.html"
        document.write_text(html, encoding="utf-8")
        await self.page.goto(document.resolve().as_uri(), wait_until="load", timeout=timeout_ms)

    async def wait_for_global(self, name: str = TIMELINE_GLOBAL, timeout_ms: int = TIMELINE_WAIT_MS) -> None:
        """Wait until ``window[name]`` exists and has a seek function.

        Raises:
            TimelineNotFoundError: the global did not appear in time.
        """
        try:
            await self.page.wait_for_function(
                f"() => window.{name} && typeof window.{name}.seek === 'function'",
                timeout=timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise TimelineNotFoundError(
                f"window.{name} with a seek() function did not appear within {timeout_ms}ms"
            ) from e

    async def pause_at(self, ms: float, name: str = TIMELINE_GLOBAL) -> None:
        await self.page.evaluate(
            f"(ms) => {{ window.{name}.pause(); window.{name}.seek(ms); }}",
            ms,
        )

    async def seek(self, ms: float, name: str = TIMELINE_GLOBAL) -> None:
        await self.page.evaluate(f"(ms) => window.{name}.seek(ms)", ms)

    async def screenshot(self, path: Path) -> None:
        await self.page.screenshot(path=str(path), type="png")

    async def close(self) -> None:
        await self.page.close()
        await self._context.close()


class BrowserPool:
    """Lazily started Chromium shared by all capture calls.

    Each ``new_session`` opens a fresh context and page at the requested
    viewport, so concurrent captures never share a page.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None
        self._lock: Optional[asyncio.Lock] = None

    async def _ensure_browser(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._browser is None:
                logger.info("Launching headless Chromium")
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                )
        return self._browser

    async def new_session(self, width: int, height: int, work_dir: Path) -> BrowserSession:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            viewport={"width": width, "height": height},
            device_scale_factor=1,
        )
        page = await context.new_page()
        return BrowserSession(context, page, work_dir)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


# ==================== CAPTURE ====================


class FrameCapturer:
    """Turns markup into a numbered PNG sequence."""

    def __init__(
        self,
        pool,
        fps: int = RENDER_FPS,
        settle_ms: int = CAPTURE_SETTLE_MS,
        timeline_wait_ms: int = TIMELINE_WAIT_MS,
    ):
        self.pool = pool
        self.fps = fps
        self.settle_ms = settle_ms
        self.timeline_wait_ms = timeline_wait_ms

    async def capture(
        self,
        html: str,
        duration: float,
        width: int,
        height: int,
        frames_dir: Path,
        fps: Optional[int] = None,
    ) -> list[Path]:
        """Capture every frame of *html* into *frames_dir*.

        *fps* overrides the capturer default so the caller that encodes the
        frames decides the rate.

        Returns:
            Paths of the written frames, in order

        Raises:
            TimelineNotFoundError: the page never exposed its timeline.
        """
        frames_dir = Path(frames_dir)
        frames_dir.mkdir(parents=True, exist_ok=True)
        fps = fps or self.fps
        timestamps = frame_timestamps(duration, fps)
        logger.info(
            "Capturing %d frames at %dfps (%dx%d, %.2fs)",
            len(timestamps), fps, width, height, duration,
        )

        session = await self.pool.new_session(width, height, frames_dir)
        try:
            await session.set_flag(CAPTURE_FLAG)
            await session.load(html)
            await session.wait_for_global(TIMELINE_GLOBAL, self.timeline_wait_ms)
            await session.pause_at(0)

            paths = []
            for i, t_ms in enumerate(timestamps):
                await session.seek(t_ms)
                if self.settle_ms > 0:
                    await asyncio.sleep(self.settle_ms / 1000)
                path = frames_dir / frame_filename(i)
                await session.screenshot(path)
                paths.append(path)
                if i and i % (fps * 5) == 0:
                    logger.info("Captured %d/%d frames", i, len(timestamps))
        finally:
            await session.close()

        logger.info("Captured %d frames", len(paths))
        return paths
