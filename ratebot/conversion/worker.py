"""Bounded conversion queue drained by a single consumer thread."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from decimal import Decimal

from ratebot.errors import QueueFullError, RateSourceError, UnknownRateError, WorkerStoppedError
from ratebot.messaging.response import ResponseChannel
from ratebot.rates.store import RateStore

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_CAPACITY = 1000
MAX_FRACTION_DIGITS = 6

_STOP = object()


@dataclass(frozen=True)
class ConversionJob:
    response: ResponseChannel
    amount: int
    base: str
    target: str


def format_value(value: Decimal) -> str:
    """Render a converted amount without exponent and without trailing zeros."""
    if value.as_tuple().exponent < -MAX_FRACTION_DIGITS:
        value = value.quantize(Decimal(1).scaleb(-MAX_FRACTION_DIGITS))
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class ConversionWorker:
    """Serialize every rate lookup through one consumer, in enqueue order."""

    def __init__(self, store: RateStore, capacity: int = DEFAULT_QUEUE_CAPACITY) -> None:
        self._store = store
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._capacity = capacity
        self._accepting = True
        self._gate = threading.Lock()
        self._stopping = threading.Lock()
        self._stop_sent = False
        self._thread = threading.Thread(target=self._run, name="conversion-worker", daemon=True)
        self._thread.start()

    @property
    def capacity(self) -> int:
        return self._capacity

    def pending(self) -> int:
        return self._queue.qsize()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def enqueue(self, job: ConversionJob) -> None:
        with self._gate:
            if not self._accepting:
                raise WorkerStoppedError("conversion worker is shutting down")
            try:
                self._queue.put_nowait(job)
            except queue.Full:
                raise QueueFullError(f"conversion queue is full ({self._capacity} jobs)") from None
        logger.debug("pushed to conversion queue: %s %s %s", job.amount, job.base, job.target)

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop accepting jobs, drain the queue, then stop the consumer.

        Returns False when the consumer was still draining after ``timeout``.
        """
        with self._gate:
            self._accepting = False
        deadline = None if timeout is None else time.monotonic() + timeout
        # enqueue never waits on this put.
        with self._stopping:
            if not self._stop_sent:
                try:
                    self._queue.put(_STOP, timeout=timeout)
                except queue.Full:
                    return False
                self._stop_sent = True
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        self._thread.join(remaining)
        return not self._thread.is_alive()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._convert(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def _convert(self, job: ConversionJob) -> None:
        try:
            value = self._store.convert(job.amount, job.base, job.target)
        except RateSourceError as exc:
            logger.error("rate fetch failed for %s: %s", job.base, exc)
            self._reply_error(job, f"Could not fetch {job.base} rates, please try again later.")
            return
        except UnknownRateError as exc:
            logger.error("conversion %s -> %s failed: %s", job.base, job.target, exc)
            self._reply_error(job, f"No rate from {job.base} to {job.target} is available.")
            return
        except Exception:
            logger.exception("conversion %s %s -> %s failed", job.amount, job.base, job.target)
            self._reply_error(job, "The conversion failed, please try again later.")
            return

        try:
            job.response.send(f"{job.amount} {job.base} = {format_value(value)} {job.target}")
        except Exception:
            logger.exception("could not deliver conversion reply via %r", job.response)

    def _reply_error(self, job: ConversionJob, text: str) -> None:
        try:
            job.response.error(text)
        except Exception:
            logger.exception("could not deliver error reply via %r", job.response)
