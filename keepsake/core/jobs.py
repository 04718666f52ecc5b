from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Callable, Iterator, Optional, TypeVar

from .config import Settings
from .logging import get_logger

T = TypeVar("T")


class EncoderSlots:
    """Caps the number of encoder processes running at the same time.

    Callers past the limit block until a slot frees up instead of spawning
    another process.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._active = 0
        self.logger = get_logger(component="encoder_slots")

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @contextmanager
    def acquire(self, purpose: str = "encode") -> Iterator[None]:
        started = time.monotonic()
        if not self._semaphore.acquire(blocking=False):
            self.logger.debug("encoder_slot_wait", purpose=purpose, capacity=self.capacity)
            self._semaphore.acquire()
            self.logger.debug("encoder_slot_acquired", purpose=purpose, waited_s=round(time.monotonic() - started, 3))
        with self._lock:
            self._active += 1
        try:
            yield
        finally:
            with self._lock:
                self._active -= 1
            self._semaphore.release()


@lru_cache(maxsize=None)
def get_encoder_slots(capacity: int) -> EncoderSlots:
    """Return the process-wide gate for ``capacity``; every encoder built from settings shares it."""
    return EncoderSlots(capacity)


class BaseJobBackend(ABC):
    @abstractmethod
    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]: ...

    def shutdown(self, wait: bool = True) -> None:
        return None


class ImmediateJobBackend(BaseJobBackend):
    """Runs the job in the caller's thread and hands back a settled future."""

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        future: Future[T] = Future()
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future


class JobQueueFull(RuntimeError):
    """Raised when a submission cannot get a queue slot in time."""


class ThreadPoolJobBackend(BaseJobBackend):
    """Fixed-size worker pool with a bounded backlog.

    At most ``workers + queue_size`` jobs are held at once, running or waiting.
    Past that, ``submit`` blocks for up to ``submit_timeout_s`` (forever when
    None) and then raises ``JobQueueFull``.
    """

    def __init__(self, workers: int, queue_size: int = 0, submit_timeout_s: Optional[float] = None):
        if queue_size < 0:
            raise ValueError("queue_size must not be negative")
        self.workers = workers
        self.queue_size = queue_size
        self.submit_timeout_s = submit_timeout_s
        self._capacity = threading.BoundedSemaphore(workers + queue_size)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="keepsake-ingest")
        self.logger = get_logger(component="job_backend")

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        if not self._capacity.acquire(timeout=self.submit_timeout_s):
            self.logger.warning("job_queue_full", workers=self.workers, queue_size=self.queue_size)
            raise JobQueueFull(f"ingest queue is full ({self.workers} running, {self.queue_size} waiting)")
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except BaseException:
            self._capacity.release()
            raise
        future.add_done_callback(lambda _: self._capacity.release())
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def get_job_backend(settings: Settings) -> BaseJobBackend:
    backend = settings.normalized_job_backend
    if backend == "immediate":
        return ImmediateJobBackend()
    if backend == "threadpool":
        return ThreadPoolJobBackend(
            workers=settings.ingest_workers,
            queue_size=settings.ingest_queue_size,
            submit_timeout_s=settings.ingest_submit_timeout_s,
        )
    raise ValueError(f"Unsupported job backend: {settings.job_queue_backend}")


__all__ = [
    "BaseJobBackend",
    "EncoderSlots",
    "ImmediateJobBackend",
    "JobQueueFull",
    "ThreadPoolJobBackend",
    "get_encoder_slots",
    "get_job_backend",
]
