"""
abmeter.tier2_delivery.pipeline
────────────────────────────────
Asynchronous delivery of exposures and events to the collector.

Producers append to an unbounded FIFO without blocking. One background
worker wakes every ``flush_interval`` seconds and runs a flush cycle:

  1. retry pass: every retry entry gains an attempt; entries that reach
     ``max_submit_attempts`` are dropped, the rest are resubmitted per kind;
  2. drain up to ``batch_size`` new records;
  3. submit the exposures batch, then the events batch.

Failure policy:

  stage          retryable        partial / permanent   unclassified
  first attempt  → retry queue    drop                  drop
  retry pass     → retry queue    drop                  exposures → retry queue,
                                                        events → drop

The unclassified asymmetry is deliberate and must not be unified. The retry
queue is capped at ``max_retry_queue_size``; overflow is dropped, older
entries are never evicted. Every drop is logged; callers never see delivery
failures.

The retry lock is held for a whole flush cycle, network calls included.
Enqueueing never takes it. ``stop`` only signals the worker and returns at
once, even while a submission is in flight. ``shutdown`` stops the worker
the same way and then drains the intake queue on the caller's thread; that
drain takes the lock, so it waits for an in-flight flush to finish first.
"""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

from abmeter.constants import (
    BATCH_SIZE,
    DEFAULT_FLUSH_INTERVAL,
    MAX_RETRY_QUEUE_SIZE,
    MAX_SUBMIT_ATTEMPTS,
)
from abmeter.tier0_core.clock import Clock, get_clock
from abmeter.tier0_core.errors import FailureKind, classify_failure
from abmeter.tier0_core.logging import get_logger
from abmeter.tier1_assignment.resolver import Exposure
from abmeter.tier2_delivery.transport import Transport

log = get_logger(__name__)


# ── Data models ────────────────────────────────────────────────────────────

class RecordKind(str, Enum):
    EXPOSURE = "exposure"
    EVENT = "event"


@dataclass(frozen=True)
class QueuedRecord:
    kind: RecordKind
    payload: dict[str, Any]


@dataclass
class RetryEntry:
    kind: RecordKind
    payload: dict[str, Any]
    attempts: int = 0


# ── Pipeline ───────────────────────────────────────────────────────────────

class DeliveryPipeline:
    def __init__(
        self,
        transport: Transport | None = None,
        *,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        batch_size: int = BATCH_SIZE,
        max_submit_attempts: int = MAX_SUBMIT_ATTEMPTS,
        max_retry_queue_size: int = MAX_RETRY_QUEUE_SIZE,
        clock: Clock | None = None,
    ) -> None:
        self.transport = transport
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.max_submit_attempts = max_submit_attempts
        self.max_retry_queue_size = max_retry_queue_size
        self._clock = clock

        self._queue: queue.SimpleQueue[QueuedRecord] = queue.SimpleQueue()
        self._retry_queue: list[RetryEntry] = []
        self._lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._stop = threading.Event()

    # ── Producer side ──────────────────────────────────────────────────────

    def enqueue_exposure(self, exposure: Exposure | dict[str, Any]) -> None:
        payload = exposure.to_dict() if isinstance(exposure, Exposure) else exposure
        self._queue.put(QueuedRecord(RecordKind.EXPOSURE, payload))

    def enqueue_event(
        self,
        event_slug: str,
        user_id: Any,
        custom_fields: dict[str, Any] | None = None,
    ) -> None:
        occurred_at = (self._clock or get_clock()).now()
        self._queue.put(QueuedRecord(RecordKind.EVENT, {
            "event_slug": event_slug,
            "user_id": user_id,
            "occurred_at": occurred_at.isoformat(),
            "custom_fields": custom_fields,
        }))

    # ── Introspection ──────────────────────────────────────────────────────

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def retry_queue(self) -> list[RetryEntry]:
        """Snapshot of the retry queue."""
        with self._lock:
            return list(self._retry_queue)

    @property
    def worker_alive(self) -> bool:
        return (
            self._worker is not None
            and self._worker.is_alive()
            and not self._stop.is_set()
        )

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the background worker. No-op while one is running."""
        if self.worker_alive:
            return
        self._stop = threading.Event()
        self._worker = threading.Thread(
            target=self._run,
            args=(self._stop,),
            name="abmeter-delivery",
            daemon=True,
        )
        self._worker.start()

    def stop(self) -> None:
        """Signal the worker to exit. Never waits for an in-flight flush."""
        self._stop.set()

    def shutdown(self) -> None:
        """
        Stop the worker, then flush until the intake queue is empty. Each
        flush takes the lock, so a flush the worker already started runs to
        completion first. The retry queue is not drained.
        """
        self.stop()
        while not self._queue.empty():
            self.flush()

    def _run(self, stop: threading.Event) -> None:
        while not stop.wait(self.flush_interval):
            try:
                self.flush()
            except Exception as exc:
                log.error("delivery.worker_error", error=str(exc))

    # ── Flush cycle ────────────────────────────────────────────────────────

    def flush(self) -> None:
        with self._lock:
            self._process_retry_queue()

            records = self._drain()
            for kind in RecordKind:
                batch = [r.payload for r in records if r.kind is kind]
                if batch:
                    self._submit_batch(kind, batch)

    def _drain(self) -> list[QueuedRecord]:
        records: list[QueuedRecord] = []
        while len(records) < self.batch_size:
            try:
                records.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return records

    @staticmethod
    def _send(transport: Transport, kind: RecordKind, payloads: list[dict[str, Any]]) -> None:
        if kind is RecordKind.EXPOSURE:
            transport.submit_exposures(payloads)
        else:
            transport.submit_events(payloads)

    def _submit_batch(self, kind: RecordKind, payloads: list[dict[str, Any]]) -> None:
        """First attempt for freshly drained records. Caller holds the lock."""
        transport = self.transport
        if transport is None:
            log.error("delivery.transport_missing", kind=kind.value, count=len(payloads))
            return

        try:
            self._send(transport, kind, payloads)
        except Exception as exc:
            failure = classify_failure(exc)
            if failure is FailureKind.RETRYABLE:
                log.error("delivery.retryable_error", kind=kind.value, count=len(payloads), error=str(exc))
                self._add_to_retry_queue(kind, payloads)
            elif failure is FailureKind.PARTIAL_FAILURE:
                log.error(
                    "delivery.partial_failure",
                    kind=kind.value,
                    count=len(payloads),
                    failed=getattr(exc, "failure_count", 0),
                )
            elif failure is FailureKind.PERMANENT:
                log.error("delivery.permanent_error", kind=kind.value, count=len(payloads), error=str(exc))
            else:
                # Cause unknown: never retried on the first attempt.
                log.error("delivery.submit_failed", kind=kind.value, count=len(payloads), error=str(exc))

    def _add_to_retry_queue(self, kind: RecordKind, payloads: list[dict[str, Any]]) -> None:
        for payload in payloads:
            if len(self._retry_queue) < self.max_retry_queue_size:
                self._retry_queue.append(RetryEntry(kind, payload))
            else:
                log.error("delivery.retry_queue_full", kind=kind.value)

    def _process_retry_queue(self) -> None:
        if not self._retry_queue:
            return

        grouped: dict[RecordKind, list[RetryEntry]] = {}
        for entry in self._retry_queue:
            grouped.setdefault(entry.kind, []).append(entry)
        self._retry_queue = []

        survivors: list[RetryEntry] = []
        for kind in RecordKind:
            survivors.extend(self._retry_batch(kind, grouped.get(kind, [])))
        self._retry_queue = survivors

    def _retry_batch(self, kind: RecordKind, entries: list[RetryEntry]) -> list[RetryEntry]:
        """Resubmit one kind's retry entries; return those to keep."""
        active: list[RetryEntry] = []
        for entry in entries:
            entry.attempts += 1
            if entry.attempts >= self.max_submit_attempts:
                log.error("delivery.max_retries_exceeded", kind=kind.value, attempts=entry.attempts)
            else:
                active.append(entry)

        transport = self.transport
        if not active or transport is None:
            return []

        try:
            self._send(transport, kind, [e.payload for e in active])
        except Exception as exc:
            failure = classify_failure(exc)
            if failure is FailureKind.RETRYABLE:
                log.error("delivery.retry_failed", kind=kind.value, count=len(active), error=str(exc))
                return active
            if failure is FailureKind.PARTIAL_FAILURE:
                log.error(
                    "delivery.retry_partial_failure",
                    kind=kind.value,
                    count=len(active),
                    failed=getattr(exc, "failure_count", 0),
                )
                return []
            if failure is FailureKind.PERMANENT:
                log.error("delivery.retry_permanent_error", kind=kind.value, error=str(exc))
                return []
            # Unclassified on retry: events are dropped, exposures kept.
            log.error("delivery.retry_submit_failed", kind=kind.value, count=len(active), error=str(exc))
            return active if kind is RecordKind.EXPOSURE else []
        return []


__all__ = ["RecordKind", "QueuedRecord", "RetryEntry", "DeliveryPipeline"]
