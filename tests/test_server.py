"""Tests for the Flask HTTP surface, using the Flask test client."""

import dataclasses
from unittest.mock import MagicMock

import pytest

from ezanim.dispatch import Job
from ezanim.models import Video, VideoRequest
from ezanim.server import create_app
from ezanim.service import VideoService
from ezanim.status import VideoRequestStatus as S
from ezanim.store import RequestStore, VideoStore


@pytest.fixture
def service():
    jobs = {}
    dispatcher = MagicMock()
    dispatcher.running = True

    def enqueue(request_id, kind, payload=None):
        job = Job(request_id=request_id, kind=kind, payload=payload or {})
        jobs[job.id] = job
        return job

    dispatcher.enqueue.side_effect = enqueue
    dispatcher.get_job.side_effect = jobs.get
    return VideoService(RequestStore(), VideoStore(), dispatcher)


@pytest.fixture
def client(service, tmp_path):
    app = create_app(service, files_dir=str(tmp_path))
    app.config["TESTING"] = True
    return app.test_client()


def _seed(service, status, html="<html><body>preview</body></html>"):
    request = dataclasses.replace(
        VideoRequest.create("Explain how bees make honey"),
        status=status,
        html_content=html,
        duration=9.0,
    )
    return service.store.add(request)


class TestCreate:
    def test_accepts_prompt(self, client, service):
        response = client.post("/video-requests", json={"prompt": "Explain how bees make honey", "aspectRatio": "1:1"})
        assert response.status_code == 202
        body = response.get_json()
        assert body["videoRequest"]["status"] == "PENDING"
        assert body["videoRequest"]["aspectRatio"] == "1:1"
        assert service.get_job(body["jobId"]).kind == "create"

    def test_defaults_to_landscape(self, client):
        response = client.post("/video-requests", json={"prompt": "Explain how bees make honey"})
        assert response.get_json()["videoRequest"]["aspectRatio"] == "16:9"

    @pytest.mark.parametrize(
        "body",
        [{}, {"prompt": "short"}, {"prompt": "Explain how bees make honey", "aspectRatio": "4:3"}],
    )
    def test_validation_errors(self, client, body):
        response = client.post("/video-requests", json=body)
        assert response.status_code == 400
        assert "error" in response.get_json()


class TestRead:
    def test_get_request(self, client, service):
        request = _seed(service, S.QA_COMPLETED)
        body = client.get(f"/video-requests/{request.id}").get_json()
        assert body["id"] == request.id
        assert body["status"] == "QA_COMPLETED"
        assert body["version"] == request.version
        assert "statusInfo" in body

    def test_unknown_request(self, client):
        assert client.get("/video-requests/nope").status_code == 404

    def test_preview_serves_markup(self, client, service):
        request = _seed(service, S.PREVIEW_READY)
        response = client.get(f"/video-requests/{request.id}/preview")
        assert response.status_code == 200
        assert response.mimetype == "text/html"
        assert b"preview" in response.data

    def test_preview_not_ready(self, client, service):
        request = _seed(service, S.GENERATING_HTML, html=None)
        assert client.get(f"/video-requests/{request.id}/preview").status_code == 409


class TestRender:
    def test_render_accepted(self, client, service):
        request = _seed(service, S.PREVIEW_READY)
        response = client.post(f"/video-requests/{request.id}/render")
        assert response.status_code == 202
        assert service.get_request(request.id).status == S.RENDERING
        assert client.get(f"/jobs/{response.get_json()['jobId']}").get_json()["kind"] == "render"

    @pytest.mark.parametrize("status", [S.PENDING, S.RENDERING, S.FAILED])
    def test_render_rejected(self, client, service, status):
        request = _seed(service, status)
        response = client.post(f"/video-requests/{request.id}/render")
        assert response.status_code == 409
        assert service.get_request(request.id) is request

    def test_render_unknown(self, client):
        assert client.post("/video-requests/nope/render").status_code == 404


class TestRefine:
    def test_refine_queues_job(self, client, service):
        request = _seed(service, S.QA_COMPLETED)
        response = client.post(f"/video-requests/{request.id}/refine", json={"critique": "Bigger bees"})
        assert response.status_code == 202
        job = service.get_job(response.get_json()["jobId"])
        assert job.payload == {"critique": "Bigger bees"}

    def test_refine_needs_critique(self, client, service):
        request = _seed(service, S.QA_COMPLETED)
        assert client.post(f"/video-requests/{request.id}/refine", json={}).status_code == 400

    def test_refine_conflict(self, client, service):
        request = _seed(service, S.COMPLETED)
        response = client.post(f"/video-requests/{request.id}/refine", json={"critique": "Bigger bees"})
        assert response.status_code == 409


class TestVideosAndJobs:
    def test_video_by_request(self, client, service):
        request = _seed(service, S.COMPLETED)
        video = service.videos.add(Video.create(request, url="http://x/v.mp4", storage_key="videos/x/v.mp4", fps=60))
        body = client.get(f"/videos/by-request/{request.id}").get_json()
        assert body["id"] == video.id
        assert (body["width"], body["height"]) == (1920, 1080)

    def test_no_video_yet(self, client, service):
        request = _seed(service, S.QA_COMPLETED)
        assert client.get(f"/videos/by-request/{request.id}").status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/jobs/nope").status_code == 404

    def test_files(self, client, tmp_path):
        (tmp_path / "videos").mkdir()
        (tmp_path / "videos" / "a.mp4").write_bytes(b"mp4")
        response = client.get("/files/videos/a.mp4")
        assert response.status_code == 200
        assert response.data == b"mp4"
        response.close()

    def test_health(self, client):
        assert client.get("/health").get_json()["status"] == "ok"
