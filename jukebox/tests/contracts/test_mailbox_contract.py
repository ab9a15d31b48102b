"""
Contract tests for SessionMailbox.

Jobs run one at a time in submission order on a single worker thread;
failures stay inside their Future; close() drains and joins.
"""

import threading

import pytest

from jukebox.playback.mailbox import MailboxClosed, SessionMailbox


@pytest.fixture
def mailbox():
    box = SessionMailbox(name="test")
    yield box
    box.close()


class TestOrdering:
    def test_jobs_run_in_submission_order(self, mailbox):
        seen = []
        futures = [mailbox.submit(lambda n=n: seen.append(n)) for n in range(50)]
        for future in futures:
            future.result(timeout=2)
        assert seen == list(range(50))

    def test_jobs_never_overlap(self, mailbox):
        active = []
        overlaps = []
        lock = threading.Lock()

        def job():
            with lock:
                active.append(1)
                if len(active) > 1:
                    overlaps.append(len(active))
            threading.Event().wait(0.001)
            with lock:
                active.pop()

        submitters = [threading.Thread(target=lambda: [mailbox.call(job, 5) for _ in range(10)]) for _ in range(4)]
        for t in submitters:
            t.start()
        for t in submitters:
            t.join(10)
        assert overlaps == []

    def test_posted_job_runs_before_later_call(self, mailbox):
        seen = []
        assert mailbox.post(lambda: seen.append("posted"))
        mailbox.call(lambda: seen.append("called"), timeout=2)
        assert seen == ["posted", "called"]


class TestResults:
    def test_call_returns_value(self, mailbox):
        assert mailbox.call(lambda: 42, timeout=2) == 42

    def test_exception_lands_in_future_and_worker_survives(self, mailbox):
        def boom():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            mailbox.call(boom, timeout=2)
        assert mailbox.call(lambda: "still alive", timeout=2) == "still alive"

    def test_posted_failure_is_logged_not_raised(self, mailbox, caplog):
        mailbox.post(lambda: 1 / 0)
        assert mailbox.call(lambda: "ok", timeout=2) == "ok"
        assert any("posted job failed" in r.getMessage() for r in caplog.records)

    def test_call_from_worker_runs_inline(self, mailbox):
        def outer():
            assert mailbox.in_worker()
            return mailbox.call(lambda: "inner")

        assert mailbox.call(outer, timeout=2) == "inner"
        assert not mailbox.in_worker()


class TestClose:
    def test_close_drains_queue_and_joins(self, thread_leak_guard):
        box = SessionMailbox(name="closing")
        seen = []
        for n in range(5):
            box.post(lambda n=n: seen.append(n))
        box.close()
        assert seen == list(range(5))

    def test_submit_after_close_raises(self):
        box = SessionMailbox(name="closed")
        box.close()
        box.close()
        with pytest.raises(MailboxClosed):
            box.submit(lambda: None)
        assert box.post(lambda: None) is False
