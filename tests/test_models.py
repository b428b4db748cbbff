"""Tests for ezanim.models: immutable, versioned records."""

import dataclasses

import pytest

from ezanim.models import Video, VideoRequest, dimensions_for
from ezanim.status import InvalidTransitionError, VideoRequestStatus as S


# ---------------------------------------------------------------------------
# VideoRequest.create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_defaults(self):
        request = VideoRequest.create("  How do vaccines work?  ")
        assert request.user_prompt == "How do vaccines work?"
        assert request.aspect_ratio == "16:9"
        assert request.status == S.PENDING
        assert request.version == 1
        assert request.html_content is None
        assert request.duration is None

    def test_short_prompt_rejected(self):
        with pytest.raises(ValueError):
            VideoRequest.create("too short")

    def test_unknown_aspect_ratio_rejected(self):
        with pytest.raises(ValueError):
            VideoRequest.create("Explain plate tectonics", "4:3")

    def test_unique_ids(self):
        a = VideoRequest.create("Explain plate tectonics")
        b = VideoRequest.create("Explain plate tectonics")
        assert a.id != b.id


class TestDimensions:
    @pytest.mark.parametrize(
        "aspect, expected",
        [("16:9", (1920, 1080)), ("9:16", (1080, 1920)), ("1:1", (1080, 1080))],
    )
    def test_presets(self, aspect, expected):
        assert dimensions_for(aspect) == expected
        request = VideoRequest.create("Explain plate tectonics", aspect)
        assert (request.width, request.height) == expected


# ---------------------------------------------------------------------------
# Versioning
# ---------------------------------------------------------------------------

class TestVersioning:
    def test_records_are_frozen(self):
        request = VideoRequest.create("Explain plate tectonics")
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.status = S.FAILED

    def test_every_change_bumps_version(self):
        r1 = VideoRequest.create("Explain plate tectonics")
        r2 = r1.with_status(S.GENERATING_SCRIPT)
        r3 = r2.with_refined_prompt("Plates move <break time=\"0.5s\" />")
        r4 = r3.with_audio("/tmp/a.mp3", 12.0)
        r5 = r4.with_html("<html></html>")
        assert [r.version for r in (r1, r2, r3, r4, r5)] == [1, 2, 3, 4, 5]
        assert r5.updated_at >= r1.updated_at

    def test_old_values_are_untouched(self):
        r1 = VideoRequest.create("Explain plate tectonics")
        r1.with_html("<html></html>")
        assert r1.html_content is None
        assert r1.version == 1

    def test_invalid_transition_creates_no_version(self):
        request = VideoRequest.create("Explain plate tectonics")
        with pytest.raises(InvalidTransitionError):
            request.with_status(S.COMPLETED)
        assert request.version == 1

    def test_duration_is_set_once(self):
        request = VideoRequest.create("Explain plate tectonics").with_audio("/tmp/a.mp3", 10.0)
        with pytest.raises(ValueError):
            request.with_audio("/tmp/b.mp3", 11.0)

    def test_rereading_returns_identical_value(self):
        request = VideoRequest.create("Explain plate tectonics")
        assert request == dataclasses.replace(request)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestSerialization:
    def test_request_dict_shape(self):
        request = VideoRequest.create("Explain plate tectonics", "9:16").with_html("<html></html>")
        data = request.to_dict()
        assert data["aspectRatio"] == "9:16"
        assert data["status"] == "PENDING"
        assert data["version"] == 2
        assert data["htmlContent"] == "<html></html>"
        assert "htmlContent" not in request.to_dict(include_html=False)

    def test_request_from_dict(self):
        request = VideoRequest.create("Explain plate tectonics").with_audio("/tmp/a.mp3", 9.5)
        assert VideoRequest.from_dict(request.to_dict()) == request

    def test_video_from_request(self):
        request = dataclasses.replace(
            VideoRequest.create("Explain plate tectonics", "1:1"),
            duration=8.0,
            version=7,
        )
        video = Video.create(request, url="https://cdn/x.mp4", storage_key="videos/x/v7.mp4", fps=60)
        assert (video.width, video.height) == (1080, 1080)
        assert video.request_version == 7
        assert video.duration == 8.0
        assert Video.from_dict(video.to_dict()) == video
