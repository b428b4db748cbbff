"""Command line entry point.

    ezanim create "How photosynthesis works" --aspect 9:16 --render
    ezanim status <request-id>
    ezanim render <request-id>

Without --server the pipeline runs in this process (set STORE_PATH so that
`status` and `render` can see requests created earlier). With --server the
commands call a running ezanim server over HTTP and --wait polls it until
the request settles.
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import Optional

import httpx

from ezanim import config
from ezanim.status import STATUS_INFO, TERMINAL_STATUSES, VideoRequestStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL = 3.0


def _print_request(data: dict) -> None:
    status = VideoRequestStatus(data["status"])
    print(f"\n{'=' * 60}")
    print(f"\U0001f194 {data['id']}")
    print(f"\U0001f4dd {data['userPrompt']}")
    print(f"\U0001f4d0 {data['aspectRatio']}   v{data['version']}")
    print(f"{STATUS_INFO[status]}")
    if data.get("duration"):
        print(f"⏱️ {data['duration']:.2f}s")
    print(f"{'=' * 60}")


def _print_video(data: Optional[dict]) -> None:
    if data:
        print(f"\U0001f3ac {data['url']} ({data['width']}x{data['height']} @ {data['fps']}fps)")


# ==================== IN-PROCESS ====================


def _show_local(service, request_id: str) -> None:
    _print_request(service.get_request(request_id).to_dict(include_html=False))
    video = service.get_video(request_id)
    _print_video(video.to_dict() if video else None)


def _status_local(args) -> int:
    from ezanim.service import open_readonly_service

    _show_local(open_readonly_service(), args.request_id)
    return 0


async def _run_local(args) -> int:
    from ezanim.service import build_service

    # This process owns the store while it runs jobs
    service = build_service(recover=True)
    dispatcher = service.dispatcher
    await dispatcher.start()
    try:
        if args.command == "create":
            request, job = service.submit(args.prompt, args.aspect)
            print(f"\U0001f680 Creating {request.id}...")
            await dispatcher.join()
            if job.error:
                print(f"❌ {job.error}")
                return 1
            if args.render:
                job = service.trigger_render(request.id)
                print("\U0001f3a5 Rendering...")
                await dispatcher.join()
                if job.error:
                    print(f"❌ {job.error}")
                    return 1
            request_id = request.id

        elif args.command == "render":
            job = service.trigger_render(args.request_id)
            print("\U0001f3a5 Rendering...")
            await dispatcher.join()
            if job.error:
                print(f"❌ {job.error}")
                return 1
            request_id = args.request_id

        _show_local(service, request_id)
        return 0
    finally:
        await dispatcher.stop()
        service.close()


# ==================== REMOTE ====================


def _wait_remote(client: httpx.Client, request_id: str, until: set) -> dict:
    while True:
        response = client.get(f"/video-requests/{request_id}")
        response.raise_for_status()
        data = response.json()
        status = VideoRequestStatus(data["status"])
        print(f"   {STATUS_INFO[status]}")
        if status in until:
            return data
        time.sleep(POLL_INTERVAL)


def _run_remote(args) -> int:
    with httpx.Client(base_url=args.server, timeout=30.0) as client:
        if args.command == "create":
            response = client.post("/video-requests", json={"prompt": args.prompt, "aspectRatio": args.aspect})
            if response.status_code >= 400:
                print(f"❌ {response.json().get('error', response.text)}")
                return 1
            request_id = response.json()["videoRequest"]["id"]
            print(f"\U0001f680 Submitted {request_id}")
            if args.render:
                data = _wait_remote(client, request_id, {VideoRequestStatus.PREVIEW_READY, *TERMINAL_STATUSES})
                if data["status"] == VideoRequestStatus.FAILED.value:
                    print("❌ Creation failed")
                    return 1
                client.post(f"/video-requests/{request_id}/render").raise_for_status()
        elif args.command == "render":
            request_id = args.request_id
            response = client.post(f"/video-requests/{request_id}/render")
            if response.status_code >= 400:
                print(f"❌ {response.json().get('error', response.text)}")
                return 1
        else:
            request_id = args.request_id

        if args.wait:
            settled = set(TERMINAL_STATUSES)
            if args.command == "create" and not args.render:
                settled.add(VideoRequestStatus.QA_COMPLETED)
            data = _wait_remote(client, request_id, settled)
        else:
            response = client.get(f"/video-requests/{request_id}")
            if response.status_code == 404:
                print(f"❌ {response.json().get('error')}")
                return 1
            response.raise_for_status()
            data = response.json()

        _print_request(data)
        video = client.get(f"/videos/by-request/{request_id}")
        _print_video(video.json() if video.status_code == 200 else None)
        return 1 if data["status"] == VideoRequestStatus.FAILED.value else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="ezanim",
        description="Turn a prompt into a narrated, animated video",
    )
    parser.add_argument(
        "--server",
        help="Base URL of a running ezanim server (default: run in this process)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Create a video request")
    create.add_argument("prompt", help="What the video should explain")
    create.add_argument(
        "--aspect",
        choices=sorted(config.ASPECT_RATIO_DIMENSIONS),
        default=config.DEFAULT_ASPECT_RATIO,
        help="Output aspect ratio",
    )
    create.add_argument("--render", action="store_true", help="Render the video once the preview is ready")
    create.add_argument("--wait", action="store_true", help="With --server, poll until the request settles")

    status = sub.add_parser("status", help="Show a request and its video")
    status.add_argument("request_id")
    status.add_argument("--wait", action="store_true", help="With --server, poll until the request settles")

    render = sub.add_parser("render", help="Render a request that is ready")
    render.add_argument("request_id")
    render.add_argument("--wait", action="store_true", help="With --server, poll until the render finishes")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        if args.server:
            return _run_remote(args)
        if args.command == "status":
            return _status_local(args)
        return asyncio.run(_run_local(args))
    except (LookupError, ValueError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
