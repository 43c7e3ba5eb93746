"""Task queue implementations with at-least-once delivery."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from celery import Celery

from .records import Task

LOGGER = logging.getLogger(__name__)


class QueueError(RuntimeError):
    """Raised when the queue transport rejects an operation."""


@dataclass(slots=True)
class Delivery:
    """A dequeued task together with the transport handle used to settle it."""

    task: Task
    handle: Any
    redelivered: bool = False


class TaskQueue:
    """Interface shared by queue transports consumed by the worker pool."""

    def enqueue_batch(self, urls: Iterable[str]) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    def dequeue(self, timeout: float | None = None) -> Optional[Delivery]:  # pragma: no cover - interface only
        raise NotImplementedError

    def ack(self, delivery: Delivery) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def release(self, delivery: Delivery) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def disconnect(self) -> None:
        """Drop resources held for the calling thread."""

    def close(self) -> None:
        """Drop every resource held by the queue."""


class InMemoryTaskQueue(TaskQueue):
    """Thread-safe in-process queue that redelivers released or recovered tasks."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._ready: deque[tuple[Task, bool]] = deque()
        self._unacked: dict[int, Task] = {}
        self._tags = itertools.count(1)

    def enqueue_batch(self, urls: Iterable[str]) -> int:
        tasks = [Task(url=url) for url in urls]
        with self._condition:
            self._ready.extend((task, False) for task in tasks)
            self._condition.notify_all()
        return len(tasks)

    def dequeue(self, timeout: float | None = None) -> Optional[Delivery]:
        with self._condition:
            if not self._condition.wait_for(lambda: bool(self._ready), timeout=timeout):
                return None
            task, redelivered = self._ready.popleft()
            tag = next(self._tags)
            self._unacked[tag] = task
        return Delivery(task=task, handle=tag, redelivered=redelivered)

    def ack(self, delivery: Delivery) -> None:
        with self._condition:
            if self._unacked.pop(delivery.handle, None) is None:
                raise QueueError(f"Delivery {delivery.handle} is not pending acknowledgment")

    def release(self, delivery: Delivery) -> None:
        with self._condition:
            task = self._unacked.pop(delivery.handle, None)
            if task is None:
                raise QueueError(f"Delivery {delivery.handle} is not pending acknowledgment")
            self._ready.append((task, True))
            self._condition.notify()

    def recover(self) -> int:
        """Requeue every unacknowledged task, as a broker does when consumers die."""

        with self._condition:
            tasks = list(self._unacked.values())
            self._unacked.clear()
            self._ready.extend((task, True) for task in tasks)
            self._condition.notify_all()
        return len(tasks)

    @property
    def ready_count(self) -> int:
        with self._condition:
            return len(self._ready)

    @property
    def unacked_count(self) -> int:
        with self._condition:
            return len(self._unacked)


class _Consumer:
    def __init__(self, connection, simple_queue) -> None:
        self.connection = connection
        self.queue = simple_queue

    def close(self) -> None:
        try:
            self.queue.close()
        finally:
            self.connection.release()


class BrokerTaskQueue(TaskQueue):
    """Durable queue carried by the Celery application's broker transport.

    Broker connections are not thread-safe, so every consuming thread gets its
    own connection. Released messages are requeued on every transport.
    Messages left unacknowledged when their consumer disconnects are returned
    by durable transports (``sqla+``, Redis, AMQP); the in-process
    ``memory://`` transport drops them.
    """

    def __init__(self, app: Celery, queue_name: str) -> None:
        self._app = app
        self._queue_name = queue_name
        self._local = threading.local()
        self._consumers: list[_Consumer] = []
        self._lock = threading.Lock()

    @property
    def queue_name(self) -> str:
        return self._queue_name

    def check_connection(self, *, max_retries: int = 3) -> None:
        try:
            with self._app.connection_for_read() as connection:
                connection.ensure_connection(max_retries=max_retries)
        except Exception as exc:
            raise QueueError(f"Broker for {self._queue_name} is unreachable: {exc}") from exc

    def enqueue_batch(self, urls: Iterable[str]) -> int:
        tasks = [Task(url=url) for url in urls]
        if not tasks:
            return 0
        try:
            with self._app.connection_for_write() as connection:
                with connection.SimpleQueue(self._queue_name) as simple_queue:
                    for task in tasks:
                        simple_queue.put(task.to_payload(), serializer="json")
        except Exception as exc:
            raise QueueError(f"Failed to enqueue {len(tasks)} tasks: {exc}") from exc
        LOGGER.info("Enqueued %d tasks on %s", len(tasks), self._queue_name)
        return len(tasks)

    def _consumer(self) -> _Consumer:
        consumer = getattr(self._local, "consumer", None)
        if consumer is None:
            connection = self._app.connection_for_read()
            consumer = _Consumer(connection, connection.SimpleQueue(self._queue_name))
            self._local.consumer = consumer
            with self._lock:
                self._consumers.append(consumer)
        return consumer

    def dequeue(self, timeout: float | None = None) -> Optional[Delivery]:
        simple_queue = self._consumer().queue
        try:
            message = simple_queue.get(block=True, timeout=timeout)
        except simple_queue.Empty:
            return None

        try:
            task = Task.from_payload(message.payload)
        except ValueError as exc:
            LOGGER.error("Discarding undecodable message on %s: %s", self._queue_name, exc)
            message.reject()
            return None

        redelivered = bool(message.delivery_info.get("redelivered", False))
        return Delivery(task=task, handle=message, redelivered=redelivered)

    def ack(self, delivery: Delivery) -> None:
        delivery.handle.ack()

    def release(self, delivery: Delivery) -> None:
        delivery.handle.requeue()

    def disconnect(self) -> None:
        consumer = getattr(self._local, "consumer", None)
        if consumer is None:
            return
        self._local.consumer = None
        with self._lock:
            if consumer in self._consumers:
                self._consumers.remove(consumer)
        consumer.close()

    def close(self) -> None:
        with self._lock:
            consumers = list(self._consumers)
            self._consumers.clear()
        for consumer in consumers:
            consumer.close()
        self._local = threading.local()


__all__ = [
    "BrokerTaskQueue",
    "Delivery",
    "InMemoryTaskQueue",
    "QueueError",
    "TaskQueue",
]
