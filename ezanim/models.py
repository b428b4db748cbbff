"""Domain records: the video request aggregate and the rendered video."""

import dataclasses
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ezanim.config import ASPECT_RATIO_DIMENSIONS, MIN_PROMPT_LENGTH
from ezanim.status import VideoRequestStatus, ensure_transition


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def dimensions_for(aspect_ratio: str) -> tuple[int, int]:
    """Return (width, height) in pixels for a supported aspect ratio."""
    try:
        return ASPECT_RATIO_DIMENSIONS[aspect_ratio]
    except KeyError:
        supported = ", ".join(ASPECT_RATIO_DIMENSIONS)
        raise ValueError(f"Unsupported aspect ratio {aspect_ratio!r} (expected one of {supported})")


@dataclass(frozen=True)
class VideoRequest:
    """A prompt moving through the pipeline.

    Instances are immutable. Every ``with_*`` method returns the next
    version of the request with ``version`` bumped and ``updated_at``
    refreshed, so anything holding an older value keeps seeing exactly what
    it read.
    """

    id: str
    user_prompt: str
    aspect_ratio: str
    refined_prompt: Optional[str] = None
    html_content: Optional[str] = None
    audio_path: Optional[str] = None
    duration: Optional[float] = None
    status: VideoRequestStatus = VideoRequestStatus.PENDING
    version: int = 1
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @classmethod
    def create(cls, user_prompt: str, aspect_ratio: str = "16:9") -> "VideoRequest":
        prompt = (user_prompt or "").strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            raise ValueError(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters")
        dimensions_for(aspect_ratio)
        now = _now()
        return cls(
            id=str(uuid.uuid4()),
            user_prompt=prompt,
            aspect_ratio=aspect_ratio,
            created_at=now,
            updated_at=now,
        )

    @property
    def width(self) -> int:
        return dimensions_for(self.aspect_ratio)[0]

    @property
    def height(self) -> int:
        return dimensions_for(self.aspect_ratio)[1]

    def _evolve(self, **changes) -> "VideoRequest":
        return dataclasses.replace(
            self,
            version=self.version + 1,
            updated_at=_now(),
            **changes,
        )

    def with_status(self, status: VideoRequestStatus) -> "VideoRequest":
        ensure_transition(self.status, status)
        return self._evolve(status=VideoRequestStatus(status))

    def with_refined_prompt(self, refined_prompt: str) -> "VideoRequest":
        return self._evolve(refined_prompt=refined_prompt)

    def with_html(self, html_content: str) -> "VideoRequest":
        return self._evolve(html_content=html_content)

    def with_audio(self, audio_path: str, duration: float) -> "VideoRequest":
        if self.duration is not None:
            raise ValueError(f"VideoRequest {self.id} already has a duration")
        return self._evolve(audio_path=audio_path, duration=float(duration))

    def to_dict(self, include_html: bool = True) -> dict:
        data = {
            "id": self.id,
            "userPrompt": self.user_prompt,
            "refinedPrompt": self.refined_prompt,
            "audioPath": self.audio_path,
            "duration": self.duration,
            "aspectRatio": self.aspect_ratio,
            "status": self.status.value,
            "version": self.version,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if include_html:
            data["htmlContent"] = self.html_content
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "VideoRequest":
        return cls(
            id=data["id"],
            user_prompt=data["userPrompt"],
            aspect_ratio=data["aspectRatio"],
            refined_prompt=data.get("refinedPrompt"),
            html_content=data.get("htmlContent"),
            audio_path=data.get("audioPath"),
            duration=data.get("duration"),
            status=VideoRequestStatus(data["status"]),
            version=int(data.get("version", 1)),
            created_at=_parse_time(data["createdAt"]),
            updated_at=_parse_time(data["updatedAt"]),
        )


@dataclass(frozen=True)
class Video:
    """The encoded, published artifact for one version of a request."""

    id: str
    video_request_id: str
    request_version: int
    url: str
    storage_key: str
    duration: float
    width: int
    height: int
    fps: int
    created_at: datetime = field(default_factory=_now)

    @classmethod
    def create(
        cls,
        request: VideoRequest,
        url: str,
        storage_key: str,
        fps: int,
    ) -> "Video":
        return cls(
            id=str(uuid.uuid4()),
            video_request_id=request.id,
            request_version=request.version,
            url=url,
            storage_key=storage_key,
            duration=request.duration,
            width=request.width,
            height=request.height,
            fps=fps,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "videoRequestId": self.video_request_id,
            "requestVersion": self.request_version,
            "url": self.url,
            "storageKey": self.storage_key,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Video":
        return cls(
            id=data["id"],
            video_request_id=data["videoRequestId"],
            request_version=int(data["requestVersion"]),
            url=data["url"],
            storage_key=data["storageKey"],
            duration=float(data["duration"]),
            width=int(data["width"]),
            height=int(data["height"]),
            fps=int(data["fps"]),
            created_at=_parse_time(data["createdAt"]),
        )
