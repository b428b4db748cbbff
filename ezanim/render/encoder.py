"""ffmpeg encoding of a captured frame sequence plus narration."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ezanim.config import FFMPEG_BIN, FFMPEG_CRF, FFMPEG_PIX_FMT, FFMPEG_PRESET

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%06d.png"


class EncodeError(RuntimeError):
    """ffmpeg exited with a non-zero status."""


def count_frames(frames_dir: Path) -> int:
    return len(list(Path(frames_dir).glob("frame_*.png")))


class VideoEncoder:
    """Encodes ``frame_%06d.png`` sequences to H.264/AAC mp4."""

    STDERR_TAIL = 2000

    def __init__(
        self,
        ffmpeg_bin: str = FFMPEG_BIN,
        crf: int = FFMPEG_CRF,
        preset: str = FFMPEG_PRESET,
        pix_fmt: str = FFMPEG_PIX_FMT,
        timeout: Optional[float] = None,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.crf = crf
        self.preset = preset
        self.pix_fmt = pix_fmt
        self.timeout = timeout

    def build_command(
        self,
        frames_dir: Path,
        output_path: Path,
        fps: int,
        width: int,
        height: int,
        audio_path: Optional[str] = None,
        frame_total: Optional[int] = None,
    ) -> list[str]:
        """ffmpeg arguments for one encode.

        With *frame_total* the output is cut to exactly frame_total / fps
        seconds; narration that runs longer is truncated and shorter
        narration is padded with silence.
        """
        cmd = [
            self.ffmpeg_bin, "-y",
            "-framerate", str(fps),
            "-i", str(Path(frames_dir) / FRAME_PATTERN),
        ]
        if audio_path:
            cmd += ["-i", str(audio_path)]
        cmd += [
            "-c:v", "libx264",
            "-pix_fmt", self.pix_fmt,
            "-crf", str(self.crf),
            "-preset", self.preset,
            "-r", str(fps),
            "-s", f"{width}x{height}",
        ]
        if audio_path:
            # Video length is authoritative
            cmd += ["-map", "0:v:0", "-map", "1:a:0", "-af", "apad", "-c:a", "aac", "-b:a", "192k"]
        if frame_total:
            cmd += ["-frames:v", str(frame_total), "-t", f"{frame_total / fps:.6f}"]
        cmd += ["-movflags", "+faststart", str(output_path)]
        return cmd

    async def encode(
        self,
        frames_dir: Path,
        output_path: Path,
        fps: int,
        width: int,
        height: int,
        audio_path: Optional[str] = None,
        frame_total: Optional[int] = None,
    ) -> Path:
        """Run ffmpeg and return *output_path*.

        The output lasts *frame_total* frames, counted from *frames_dir* when
        not given.

        Raises:
            EncodeError: ffmpeg failed; the message carries its stderr tail.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if frame_total is None:
            frame_total = count_frames(frames_dir)
        if not frame_total:
            raise EncodeError(f"No frames to encode in {frames_dir}")
        cmd = self.build_command(frames_dir, output_path, fps, width, height, audio_path, frame_total)
        logger.info("Encoding %s", output_path.name)
        logger.debug("ffmpeg command: %s", " ".join(cmd))

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise EncodeError(f"ffmpeg timed out after {self.timeout}s")

        if process.returncode != 0:
            tail = stderr.decode(errors="replace")[-self.STDERR_TAIL:]
            raise EncodeError(f"ffmpeg exited with {process.returncode}: {tail}")

        logger.info("Encoded %s", output_path)
        return output_path
