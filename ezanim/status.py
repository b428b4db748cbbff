"""Video request lifecycle: statuses and the allowed transitions between them.

    PENDING -> (GENERATING_SCRIPT -> GENERATING_AUDIO -> TRANSCRIBING -> GENERATING_HTML)
            -> PREVIEW_READY -> QA_COMPLETED -> RENDERING -> COMPLETED

FAILED is reachable from every non-terminal status. COMPLETED and FAILED are
terminal. The GENERATING_* / TRANSCRIBING labels are progress hints only;
nothing branches on them.
"""

from enum import Enum


class VideoRequestStatus(str, Enum):
    PENDING = "PENDING"
    GENERATING_SCRIPT = "GENERATING_SCRIPT"
    GENERATING_AUDIO = "GENERATING_AUDIO"
    TRANSCRIBING = "TRANSCRIBING"
    GENERATING_HTML = "GENERATING_HTML"
    PREVIEW_READY = "PREVIEW_READY"
    QA_COMPLETED = "QA_COMPLETED"
    RENDERING = "RENDERING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class InvalidTransitionError(ValueError):
    """Raised when a request is asked to move to a status it cannot reach."""


class NotReadyForRenderError(InvalidTransitionError):
    """Raised when a render is triggered for a request that is not render-eligible."""


S = VideoRequestStatus

# Sub-stages of content generation, in pipeline order
GENERATION_STAGES = (
    S.GENERATING_SCRIPT,
    S.GENERATING_AUDIO,
    S.TRANSCRIBING,
    S.GENERATING_HTML,
)

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.FAILED})
RENDERABLE_STATUSES = frozenset({S.PREVIEW_READY, S.QA_COMPLETED})


def _build_transitions() -> dict:
    table = {
        S.PENDING: set(GENERATION_STAGES) | {S.PREVIEW_READY},
        S.PREVIEW_READY: {S.QA_COMPLETED, S.RENDERING},
        S.QA_COMPLETED: {S.RENDERING},
        S.RENDERING: {S.COMPLETED},
        S.COMPLETED: set(),
        S.FAILED: set(),
    }
    for i, stage in enumerate(GENERATION_STAGES):
        table[stage] = set(GENERATION_STAGES[i + 1:]) | {S.PREVIEW_READY}
    for status, targets in table.items():
        if status not in TERMINAL_STATUSES:
            targets.add(S.FAILED)
    return {status: frozenset(targets) for status, targets in table.items()}


TRANSITIONS = _build_transitions()

STATUS_INFO = {
    S.PENDING: "⏳ Waiting in queue...",
    S.GENERATING_SCRIPT: "✍️ Writing the narration script...",
    S.GENERATING_AUDIO: "🎙️ Synthesizing the voiceover...",
    S.TRANSCRIBING: "📝 Transcribing word timings...",
    S.GENERATING_HTML: "🎨 Authoring the animation...",
    S.PREVIEW_READY: "👀 First draft ready for preview, quality review running...",
    S.QA_COMPLETED: "✅ Quality review finished, ready to render",
    S.RENDERING: "🎬 Rendering video (capturing frames & encoding)...",
    S.COMPLETED: "✅ Video is ready!",
    S.FAILED: "❌ Something went wrong",
}


def can_transition(current: VideoRequestStatus, target: VideoRequestStatus) -> bool:
    return VideoRequestStatus(target) in TRANSITIONS[VideoRequestStatus(current)]


def ensure_transition(current: VideoRequestStatus, target: VideoRequestStatus) -> None:
    """Raise InvalidTransitionError unless *current* may move to *target*."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move from {VideoRequestStatus(current).value} "
            f"to {VideoRequestStatus(target).value}"
        )


def is_terminal(status: VideoRequestStatus) -> bool:
    return VideoRequestStatus(status) in TERMINAL_STATUSES


def ensure_renderable(request) -> None:
    """Guard for the render trigger.

    Rendering is accepted only from PREVIEW_READY or QA_COMPLETED, and only
    once the request has markup and an authoritative duration.

    Raises:
        NotReadyForRenderError: the request cannot be rendered right now.
    """
    if request.status not in RENDERABLE_STATUSES:
        raise NotReadyForRenderError(
            f"VideoRequest {request.id} is not ready for rendering "
            f"(status {request.status.value})"
        )
    if not request.html_content:
        raise NotReadyForRenderError(f"VideoRequest {request.id} has no animation markup yet")
    if not request.duration:
        raise NotReadyForRenderError(f"VideoRequest {request.id} has no duration yet")
