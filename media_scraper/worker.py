"""Bounded-concurrency worker pool draining the scrape task queue."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from .extraction import extract_media
from .http_client import FetchError, HttpFetcher
from .persistence import PersistenceError, ResultSink
from .records import FailureRecord, MediaRecord, Task
from .task_queue import Delivery, TaskQueue

LOGGER = logging.getLogger(__name__)

Extractor = Callable[[str, str], Sequence[MediaRecord]]

PROCESSING_ERROR_KIND = "processing"


class TaskOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RELEASED = "released"


@dataclass(slots=True)
class LaneStats:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    released: int = 0

    def record(self, outcome: TaskOutcome) -> None:
        self.processed += 1
        if outcome is TaskOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome is TaskOutcome.FAILED:
            self.failed += 1
        else:
            self.released += 1

    def merge(self, other: "LaneStats") -> "LaneStats":
        return LaneStats(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            released=self.released + other.released,
        )


def execute_task(
    task: Task,
    fetcher: HttpFetcher,
    sink: ResultSink,
    extractor: Extractor = extract_media,
) -> TaskOutcome:
    """Fetch, extract and persist one task.

    Exactly one of a media batch (possibly empty) or a failure record reaches
    ``sink``. :class:`PersistenceError` propagates so the caller can leave the
    task unacknowledged.
    """

    failure: FailureRecord | None = None
    records: Sequence[MediaRecord] = ()
    try:
        document = fetcher.fetch(task.url)
        records = list(extractor(task.url, document.text))
    except FetchError as exc:
        failure = FailureRecord(source_url=task.url, error_message=str(exc), error_kind=exc.kind.value)
    except Exception as exc:
        LOGGER.exception("Unexpected error while processing %s", task.url)
        failure = FailureRecord(
            source_url=task.url,
            error_message=str(exc) or exc.__class__.__name__,
            error_kind=PROCESSING_ERROR_KIND,
        )

    if failure is not None:
        sink.write_failure(failure)
        LOGGER.warning("Recorded %s failure for %s: %s", failure.error_kind, task.url, failure.error_message)
        return TaskOutcome.FAILED

    sink.write_media_records(records)
    LOGGER.info("Stored %d media records for %s", len(records), task.url)
    return TaskOutcome.SUCCEEDED


class WorkerPool:
    """Runs ``concurrency`` lanes, each processing one task at a time.

    Lanes share only the queue and the sink; every lane builds its own fetcher.
    A task is acknowledged after its outcome has been written, and released
    back to the queue when the write fails. A task that cannot be processed at
    all is logged and acknowledged so the lane keeps draining the queue.
    """

    def __init__(
        self,
        queue: TaskQueue,
        sink: ResultSink,
        *,
        concurrency: int = 10,
        fetcher_factory: Callable[[], HttpFetcher] | None = None,
        extractor: Extractor = extract_media,
        dequeue_timeout: float = 1.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._queue = queue
        self._sink = sink
        self._concurrency = concurrency
        self._fetcher_factory = fetcher_factory or HttpFetcher
        self._extractor = extractor
        self._dequeue_timeout = dequeue_timeout
        self._stop_event = threading.Event()
        self._executor: ThreadPoolExecutor | None = None
        self._futures: list[Future[LaneStats]] = []

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def start(self, *, until_idle: bool = False) -> None:
        if self._executor is not None:
            raise RuntimeError("Worker pool already started")
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._concurrency,
            thread_name_prefix="media-scraper-lane",
        )
        self._futures = [
            self._executor.submit(self._run_lane, index, until_idle)
            for index in range(self._concurrency)
        ]
        LOGGER.info("Started %d worker lanes", self._concurrency)

    def stop(self) -> None:
        """Ask lanes to exit after their in-flight task."""
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> LaneStats:
        if self._executor is None:
            return LaneStats()

        done, not_done = wait(self._futures, timeout=timeout)
        if not_done:
            raise TimeoutError(f"{len(not_done)} worker lanes still running")

        totals = LaneStats()
        for future in done:
            try:
                totals = totals.merge(future.result())
            except Exception:
                LOGGER.exception("Worker lane terminated unexpectedly")
        self._executor.shutdown(wait=True)
        self._executor = None
        self._futures = []
        LOGGER.info(
            "Worker pool finished: %d processed, %d succeeded, %d failed, %d released",
            totals.processed,
            totals.succeeded,
            totals.failed,
            totals.released,
        )
        return totals

    def run(self, *, until_idle: bool = False) -> LaneStats:
        self.start(until_idle=until_idle)
        try:
            return self.join()
        except KeyboardInterrupt:
            LOGGER.info("Interrupted; waiting for in-flight tasks to finish")
            self.stop()
            return self.join()

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.stop()
        self.join()

    def _run_lane(self, index: int, until_idle: bool) -> LaneStats:
        stats = LaneStats()
        fetcher = self._fetcher_factory()
        try:
            while not self._stop_event.is_set():
                try:
                    delivery = self._queue.dequeue(timeout=self._dequeue_timeout)
                except Exception:
                    LOGGER.exception("Lane %d failed to dequeue; backing off", index)
                    self._stop_event.wait(self._dequeue_timeout)
                    continue

                if delivery is None:
                    if until_idle:
                        break
                    continue

                stats.record(self._handle(delivery, fetcher))
        finally:
            fetcher.close()
            self._queue.disconnect()
        LOGGER.debug("Lane %d exiting after %d tasks", index, stats.processed)
        return stats

    def _handle(self, delivery: Delivery, fetcher: HttpFetcher) -> TaskOutcome:
        url = delivery.task.url
        try:
            outcome = execute_task(delivery.task, fetcher, self._sink, self._extractor)
        except PersistenceError as exc:
            LOGGER.error("Failed to persist outcome for %s; releasing for redelivery: %s", url, exc)
            try:
                self._queue.release(delivery)
            except Exception:
                LOGGER.exception("Failed to release %s; the broker will redeliver it", url)
            return TaskOutcome.RELEASED
        except Exception:
            # Redelivering would fail the same way, so the task is settled here.
            LOGGER.exception("Dropping %r after an unrecoverable processing error", url)
            outcome = TaskOutcome.FAILED

        try:
            self._queue.ack(delivery)
        except Exception:
            LOGGER.exception("Failed to acknowledge %s; it may be redelivered", url)
        return outcome


__all__ = ["LaneStats", "TaskOutcome", "WorkerPool", "execute_task"]
