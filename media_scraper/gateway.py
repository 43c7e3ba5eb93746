"""Bulk URL submission into the scrape task queue."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .config import DEFAULT_MAX_BATCH
from .task_queue import TaskQueue

LOGGER = logging.getLogger(__name__)


class SubmissionValidationError(ValueError):
    """Raised when a submission is rejected before anything is enqueued."""


class SubmissionGateway:
    """Validates URL batches and enqueues one task per URL."""

    def __init__(self, queue: TaskQueue, *, max_batch: int = DEFAULT_MAX_BATCH) -> None:
        if max_batch < 1:
            raise ValueError("max_batch must be at least 1")
        self._queue = queue
        self._max_batch = max_batch

    @property
    def max_batch(self) -> int:
        return self._max_batch

    def validate(self, urls: Sequence[str]) -> None:
        if not urls:
            raise SubmissionValidationError("At least one URL is required")
        if len(urls) > self._max_batch:
            raise SubmissionValidationError(
                f"Received {len(urls)} URLs; at most {self._max_batch} are accepted per submission"
            )
        for position, url in enumerate(urls):
            if not isinstance(url, str):
                raise SubmissionValidationError(f"URL at position {position} is not a string")
            if not url.strip():
                raise SubmissionValidationError(f"URL at position {position} is empty")

    def submit(self, urls: Iterable[str]) -> int:
        """Enqueue every URL, or none of them when the batch is invalid."""

        batch = list(urls)
        self.validate(batch)
        accepted = self._queue.enqueue_batch(batch)
        LOGGER.info("Accepted %d of %d submitted URLs", accepted, len(batch))
        return accepted


def read_url_lines(lines: Iterable[str]) -> list[str]:
    """Return URLs from text lines, skipping blanks and ``#`` comments."""

    urls: list[str] = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        urls.append(line)
    return urls


__all__ = ["SubmissionGateway", "SubmissionValidationError", "read_url_lines"]
