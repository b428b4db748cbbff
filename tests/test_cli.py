"""Tests for the ezanim command line against a mocked HTTP server."""

import httpx
import pytest

from ezanim import cli

REQUEST = {
    "id": "abc",
    "userPrompt": "Explain how bees make honey",
    "aspectRatio": "16:9",
    "status": "COMPLETED",
    "version": 12,
    "duration": 9.0,
}
VIDEO = {"url": "https://cdn/v12.mp4", "width": 1920, "height": 1080, "fps": 60}


@pytest.fixture
def server(monkeypatch):
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        if request.method == "GET" and request.url.path == "/video-requests/abc":
            return httpx.Response(200, json=REQUEST)
        if request.method == "GET" and request.url.path == "/videos/by-request/abc":
            return httpx.Response(200, json=VIDEO)
        if request.method == "POST" and request.url.path == "/video-requests":
            return httpx.Response(202, json={"videoRequest": {**REQUEST, "status": "PENDING"}, "jobId": "j1"})
        if request.method == "POST" and request.url.path == "/video-requests/abc/render":
            return httpx.Response(409, json={"error": "VideoRequest abc is not ready for rendering"})
        return httpx.Response(404, json={"error": "not found"})

    real_client = httpx.Client
    monkeypatch.setattr(
        cli.httpx, "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return calls


class TestRemoteCommands:
    def test_status(self, server, capsys):
        assert cli.main(["--server", "http://ezanim.test", "status", "abc"]) == 0
        out = capsys.readouterr().out
        assert "abc" in out
        assert "https://cdn/v12.mp4" in out

    def test_status_unknown(self, server, capsys):
        assert cli.main(["--server", "http://ezanim.test", "status", "zzz"]) == 1

    def test_create(self, server, capsys):
        assert cli.main(["--server", "http://ezanim.test", "create", "Explain how bees make honey"]) == 0
        assert ("POST", "/video-requests") in server

    def test_render_conflict(self, server, capsys):
        assert cli.main(["--server", "http://ezanim.test", "render", "abc"]) == 1
        assert "not ready" in capsys.readouterr().out


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])


def test_aspect_choices():
    with pytest.raises(SystemExit):
        cli.main(["create", "Explain how bees make honey", "--aspect", "4:3"])


class TestLocalStatus:
    def test_reads_without_building_the_pipeline(self, monkeypatch, capsys):
        from ezanim import service as service_module
        from ezanim.models import VideoRequest
        from ezanim.service import VideoService
        from ezanim.status import VideoRequestStatus
        from ezanim.store import RequestStore, VideoStore

        store = RequestStore()
        request = store.add(VideoRequest.create("Explain how bees make honey"))
        request = store.update(request.id, lambda r: r.with_status(VideoRequestStatus.GENERATING_SCRIPT))

        def no_pipeline(*args, **kwargs):
            raise AssertionError("status must not build the pipeline")

        monkeypatch.setattr(service_module, "build_service", no_pipeline)
        monkeypatch.setattr(
            service_module, "open_readonly_service",
            lambda: VideoService(store, VideoStore(), dispatcher=None),
        )

        assert cli.main(["status", request.id]) == 0
        assert request.id in capsys.readouterr().out
        # a request mid-job elsewhere is left alone
        assert store.get(request.id).status == VideoRequestStatus.GENERATING_SCRIPT
