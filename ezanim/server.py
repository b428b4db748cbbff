"""HTTP server for video requests.

Run with: python -m ezanim.server
Pipeline jobs run on the dispatcher's background event loop; request
handlers only validate, store and enqueue.
"""

import logging
from typing import Optional

from flask import Flask, Response, jsonify, request, send_from_directory

from ezanim import config
from ezanim.status import STATUS_INFO, InvalidTransitionError
from ezanim.store import RequestNotFoundError

logger = logging.getLogger(__name__)


def create_app(service, files_dir: Optional[str] = None) -> Flask:
    """Build the Flask app around a VideoService.

    Args:
        service: VideoService whose dispatcher is already running
        files_dir: Local storage root to serve under /files (local driver only)
    """
    app = Flask(__name__)

    @app.errorhandler(RequestNotFoundError)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(InvalidTransitionError)
    def conflict(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.route("/video-requests", methods=["POST"])
    def create_video_request():
        """Accept a prompt and start generating its preview."""
        body = request.get_json(silent=True) or {}
        prompt = body.get("prompt")
        if not isinstance(prompt, str):
            raise ValueError("'prompt' is required")
        aspect_ratio = body.get("aspectRatio") or config.DEFAULT_ASPECT_RATIO
        video_request, job = service.submit(prompt, aspect_ratio)
        return jsonify({
            "videoRequest": video_request.to_dict(include_html=False),
            "jobId": job.id,
        }), 202

    @app.route("/video-requests/<request_id>", methods=["GET"])
    def get_video_request(request_id: str):
        video_request = service.get_request(request_id)
        data = video_request.to_dict()
        data["statusInfo"] = STATUS_INFO[video_request.status]
        return jsonify(data)

    @app.route("/video-requests/<request_id>/preview", methods=["GET"])
    def preview(request_id: str):
        """Serve the current markup so it can be opened in a browser."""
        html = service.get_preview_html(request_id)
        if html is None:
            return jsonify({"error": f"VideoRequest {request_id} has no preview yet"}), 409
        return Response(html, mimetype="text/html")

    @app.route("/video-requests/<request_id>/render", methods=["POST"])
    def render(request_id: str):
        job = service.trigger_render(request_id)
        return jsonify({"jobId": job.id, "status": "RENDERING"}), 202

    @app.route("/video-requests/<request_id>/refine", methods=["POST"])
    def refine(request_id: str):
        """Apply a user critique to the current markup."""
        body = request.get_json(silent=True) or {}
        job = service.request_revision(request_id, body.get("critique") or "")
        return jsonify({"jobId": job.id}), 202

    @app.route("/videos/by-request/<request_id>", methods=["GET"])
    def get_video(request_id: str):
        video = service.get_video(request_id)
        if video is None:
            return jsonify({"error": f"No video rendered for {request_id} yet"}), 404
        return jsonify(video.to_dict())

    @app.route("/jobs/<job_id>", methods=["GET"])
    def get_job(job_id: str):
        job = service.get_job(job_id)
        if job is None:
            return jsonify({"error": f"Job {job_id} not found"}), 404
        return jsonify(job.to_dict())

    @app.route("/files/<path:key>", methods=["GET"])
    def files(key: str):
        if not files_dir:
            return jsonify({"error": "Local file serving is disabled"}), 404
        return send_from_directory(files_dir, key)

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok", "workers": service.dispatcher.running})

    return app


def main():
    from ezanim.service import build_service

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    service = build_service(recover=True)
    service.dispatcher.start_in_thread()
    files_dir = config.LOCAL_STORAGE_DIR if config.STORAGE_DRIVER == "local" else None
    app = create_app(service, files_dir=files_dir)

    print("Starting ezanim server...")
    print("Endpoints:")
    print("  POST /video-requests")
    print("  GET  /video-requests/<id>")
    print("  GET  /video-requests/<id>/preview")
    print("  POST /video-requests/<id>/render")
    print("  POST /video-requests/<id>/refine")
    print("  GET  /videos/by-request/<id>")
    print("  GET  /jobs/<job_id>")
    print("  GET  /health")
    try:
        app.run(host=config.SERVER_HOST, port=config.SERVER_PORT, threaded=True)
    finally:
        service.dispatcher.stop_thread()


if __name__ == "__main__":
    main()
