"""
Pattern learning for Thoughtflow.

Each classification nudges the user's stored pattern: vocabulary counts
add up, tags remember their latest category, and the running accuracy
absorbs the new confidence. Updates run on a background worker so a slow
or failing store never delays a classification.
"""

import logging
import queue
import re
import threading
import time
from collections import Counter
from typing import NamedTuple

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from thoughtflow.errors import PersistenceError
from thoughtflow.models import ThoughtAnalysis, UserPattern
from thoughtflow.store import PatternStore

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 4
NON_WORD_RE = re.compile(r"[^\w]")


class LearningJob(NamedTuple):
    user_id: str
    content: str
    analysis: ThoughtAnalysis


def tokenize(content: str) -> Counter[str]:
    """Lowercased words with punctuation removed, longer than three characters."""
    words = (NON_WORD_RE.sub("", word) for word in content.lower().split())
    return Counter(word for word in words if len(word) >= MIN_WORD_LENGTH)


def category_updates(analysis: ThoughtAnalysis) -> dict[str, str]:
    return {tag: analysis.category for tag in analysis.tags}


class PatternLearner:
    """Folds classifications into per-user patterns."""

    def __init__(
        self,
        store: PatternStore,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ):
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

        self._queue: queue.Queue[LearningJob | None] = queue.Queue()
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        self.dropped = 0

    def apply(self, user_id: str, content: str, analysis: ThoughtAnalysis) -> UserPattern:
        """Merge one update into the store. Raises PersistenceError."""
        return self.store.merge_user_pattern(
            user_id,
            dict(tokenize(content)),
            category_updates(analysis),
            analysis.confidence,
        )

    def update(self, user_id: str, content: str, analysis: ThoughtAnalysis) -> None:
        """Synchronous update. Store failures are logged, never raised."""
        try:
            self.apply(user_id, content, analysis)
        except PersistenceError as e:
            logger.warning("Pattern update for %s failed: %s", user_id, e)

    # ==========================================
    # Background delivery
    # ==========================================

    def submit(self, user_id: str, content: str, analysis: ThoughtAnalysis) -> None:
        """Queue an update for the background worker."""
        self._ensure_worker()
        self._queue.put(LearningJob(user_id, content, analysis))

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued update is processed. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain the queue and stop the worker."""
        with self._lock:
            worker = self._worker
            self._worker = None
        if worker is None:
            return
        self._queue.put(None)
        worker.join(timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name="thoughtflow-learner", daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                self._deliver(job)
            finally:
                self._queue.task_done()

    def _deliver(self, job: LearningJob) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(PersistenceError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            retrying(self.apply, job.user_id, job.content, job.analysis)
            return
        except PersistenceError as e:
            logger.warning(
                "Pattern update for %s failed after %d attempts: %s",
                job.user_id, self.max_attempts, e,
            )
        except Exception:
            logger.exception("Pattern update for %s crashed", job.user_id)

        self.dropped += 1
        logger.error("Dropped pattern update for %s", job.user_id)
