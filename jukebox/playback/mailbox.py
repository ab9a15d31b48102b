"""
Session mailbox for the Jukebox playback engine.

Single worker thread draining a FIFO of jobs. Everything that mutates a
guild's playlist or drives its PlaybackSession runs here, so commands for
one guild execute one at a time in arrival order while other guilds'
mailboxes keep running.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class MailboxClosed(RuntimeError):
    """Raised when submitting to a mailbox that has been shut down."""


class SessionMailbox:
    """
    Thread-safe job queue with one consumer thread.

    submit() returns a Future for the job's result; post() is fire-and-forget.
    Exceptions raised by a job are set on its Future (or logged for posted
    jobs) and never stop the worker.
    """

    def __init__(self, name: str = "session"):
        """
        Initialize and start the worker thread.

        Args:
            name: Label used for the thread name and log messages
        """
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._closed = False
        self._close_lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name=f"mailbox-{name}", daemon=True)
        self._thread.start()

    def in_worker(self) -> bool:
        """True if called from this mailbox's worker thread."""
        return threading.current_thread() is self._thread

    def submit(self, job: Callable[[], Any]) -> Future:
        """
        Queue a job and return a Future for its result.

        Raises:
            MailboxClosed: If the mailbox has been closed
        """
        future: Future = Future()
        self._put((job, future))
        return future

    def post(self, job: Callable[[], Any]) -> bool:
        """
        Queue a job without waiting for it.

        Returns:
            True if queued, False if the mailbox is closed
        """
        try:
            self._put((job, None))
            return True
        except MailboxClosed:
            logger.debug(f"[MAILBOX] {self.name}: dropped job posted after close")
            return False

    def call(self, job: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        """
        Run a job on the worker and wait for its result.

        Called from the worker itself, the job runs inline so a job can
        reuse other public entry points without deadlocking.
        """
        if self.in_worker():
            return job()
        return self.submit(job).result(timeout=timeout)

    def _put(self, item) -> None:
        with self._close_lock:
            if self._closed:
                raise MailboxClosed(f"mailbox {self.name} is closed")
            self._queue.put(item)

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop accepting jobs, let queued jobs finish, and join the worker.

        Idempotent.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        if not self.in_worker():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"[MAILBOX] {self.name}: worker did not exit within {timeout}s")

    def qsize(self) -> int:
        return self._queue.qsize()

    def _run(self) -> None:
        logger.debug(f"[MAILBOX] {self.name}: worker started")
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            job, future = item
            if future is not None and not future.set_running_or_notify_cancel():
                continue
            try:
                result = job()
            except Exception as e:
                if future is not None:
                    future.set_exception(e)
                else:
                    logger.error(f"[MAILBOX] {self.name}: posted job failed: {e}", exc_info=True)
                continue
            if future is not None:
                future.set_result(result)
        logger.debug(f"[MAILBOX] {self.name}: worker stopped")
