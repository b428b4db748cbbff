"""Tests for ezanim.dispatch: queues, worker pools and per-request ordering."""

import asyncio
import time

import pytest

from ezanim.dispatch import Dispatcher, JobState


def _recording_handlers(events, delay=0.01, fail_kinds=()):
    def make(kind):
        async def handler(job):
            events.append(("start", kind, job.request_id))
            await asyncio.sleep(delay)
            events.append(("end", kind, job.request_id))
            if kind in fail_kinds:
                raise RuntimeError(f"{kind} exploded")
        return handler
    return {kind: make(kind) for kind in ("create", "refine", "render")}


def _overlaps(events, request_id):
    active = 0
    for phase, _, rid in events:
        if rid != request_id:
            continue
        active += 1 if phase == "start" else -1
        if active > 1:
            return True
    return False


class TestDispatcher:
    def test_only_newest_finished_jobs_are_kept(self):
        events = []

        async def scenario():
            dispatcher = Dispatcher(_recording_handlers(events, delay=0), creation_workers=1, job_retention=2)
            await dispatcher.start()
            jobs = [dispatcher.enqueue(f"req-{i}", "create") for i in range(5)]
            queued = dispatcher.get_job(jobs[0].id)
            await dispatcher.join()
            await dispatcher.stop()
            return dispatcher, jobs, queued

        dispatcher, jobs, queued = asyncio.run(scenario())
        assert queued is jobs[0]
        assert [dispatcher.get_job(job.id) for job in jobs[:3]] == [None, None, None]
        assert [dispatcher.get_job(job.id) for job in jobs[3:]] == jobs[3:]
        assert all(job.state == JobState.COMPLETED for job in jobs)

    def test_jobs_for_one_request_never_overlap(self):
        events = []

        async def scenario():
            dispatcher = Dispatcher(_recording_handlers(events), creation_workers=2, render_workers=2)
            await dispatcher.start()
            jobs = [
                dispatcher.enqueue("req-1", "create"),
                dispatcher.enqueue("req-1", "render"),
                dispatcher.enqueue("req-1", "refine", {"critique": "bigger"}),
                dispatcher.enqueue("req-1", "render"),
            ]
            await dispatcher.join()
            await dispatcher.stop()
            return jobs

        jobs = asyncio.run(scenario())
        assert all(job.state == JobState.COMPLETED for job in jobs)
        assert not _overlaps(events, "req-1")
        assert len(events) == 8

    def test_different_requests_run_concurrently(self):
        events = []

        async def scenario():
            dispatcher = Dispatcher(_recording_handlers(events, delay=0.05), creation_workers=2)
            await dispatcher.start()
            dispatcher.enqueue("req-a", "create")
            dispatcher.enqueue("req-b", "create")
            await dispatcher.join()
            await dispatcher.stop()

        asyncio.run(scenario())
        assert [e[0] for e in events[:2]] == ["start", "start"]

    def test_failed_job_records_error_and_worker_survives(self):
        events = []

        async def scenario():
            dispatcher = Dispatcher(
                _recording_handlers(events, fail_kinds=("render",)),
                creation_workers=1,
                render_workers=1,
            )
            await dispatcher.start()
            failed = dispatcher.enqueue("req-1", "render")
            after = dispatcher.enqueue("req-2", "render")
            await dispatcher.join()
            await dispatcher.stop()
            return failed, after

        failed, after = asyncio.run(scenario())
        assert failed.state == JobState.FAILED
        assert failed.error == "render exploded"
        assert failed.finished_at is not None
        assert after.state == JobState.FAILED
        assert len(events) == 4

    def test_job_handle_and_lookup(self):
        async def scenario():
            dispatcher = Dispatcher(_recording_handlers([]))
            await dispatcher.start()
            job = dispatcher.enqueue("req-1", "refine", {"critique": "slower"})
            assert job.state == JobState.QUEUED
            assert job.queue == "creation"
            assert dispatcher.get_job(job.id) is job
            await dispatcher.join()
            await dispatcher.stop()
            return job

        job = asyncio.run(scenario())
        data = job.to_dict()
        assert data["state"] == "completed"
        assert data["kind"] == "refine"
        assert data["queue"] == "creation"
        assert data["requestId"] == "req-1"

    def test_render_jobs_use_render_queue(self):
        async def scenario():
            dispatcher = Dispatcher(_recording_handlers([]))
            await dispatcher.start()
            job = dispatcher.enqueue("req-1", "render")
            await dispatcher.join()
            await dispatcher.stop()
            return job

        assert asyncio.run(scenario()).queue == "render"

    def test_enqueue_requires_running_dispatcher(self):
        dispatcher = Dispatcher(_recording_handlers([]))
        with pytest.raises(RuntimeError):
            dispatcher.enqueue("req-1", "create")

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            Dispatcher({"publish": lambda job: None})

    def test_stop_runs_shutdown_hook(self):
        closed = []

        async def on_stop():
            closed.append(True)

        async def scenario():
            dispatcher = Dispatcher(_recording_handlers([]), on_stop=on_stop)
            await dispatcher.start()
            await dispatcher.stop()
            return dispatcher

        dispatcher = asyncio.run(scenario())
        assert closed == [True]
        assert not dispatcher.running


class TestDispatcherThread:
    def test_enqueue_from_another_thread(self):
        events = []
        dispatcher = Dispatcher(_recording_handlers(events))
        dispatcher.start_in_thread()
        try:
            job = dispatcher.enqueue("req-1", "create")
            deadline = time.monotonic() + 5
            while not job.done and time.monotonic() < deadline:
                time.sleep(0.01)
            assert job.state == JobState.COMPLETED
            assert events == [("start", "create", "req-1"), ("end", "create", "req-1")]
        finally:
            dispatcher.stop_thread()
