"""In-memory per-affiliate indication history with bounded retention."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..config import settings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class IndicationRecord:
    actor_id: str
    timestamp: datetime


class IndicationHistory:
    """Append-only log per actor, pruned to the retention horizon on every write.

    Each actor's log has its own lock, so reads and writes for different
    actors never contend. The registry lock guards creating and removing
    per-actor locks. An actor whose log becomes empty is dropped entirely,
    lock included; a caller that acquired a lock which has since been dropped
    retries with the current one. Timestamps must be timezone-aware.
    """

    def __init__(self, *, retention: timedelta | None = None, clock: Clock = utcnow) -> None:
        if retention is None:
            retention = timedelta(seconds=settings.velocity.retention_seconds)
        self._retention = retention
        self._clock = clock
        self._logs: dict[str, list[IndicationRecord]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def retention(self) -> timedelta:
        return self._retention

    def now(self) -> datetime:
        return self._clock()

    def actors(self) -> frozenset[str]:
        """Actors currently holding at least one retained record."""

        return frozenset(self._locks)

    def _acquire(self, actor_id: str, *, create: bool = False) -> threading.Lock | None:
        while True:
            lock = self._locks.get(actor_id)
            if lock is None:
                if not create:
                    return None
                with self._registry_lock:
                    lock = self._locks.setdefault(actor_id, threading.Lock())
            lock.acquire()
            if self._locks.get(actor_id) is lock:
                return lock
            lock.release()

    def record(self, actor_id: str, timestamp: datetime | None = None) -> IndicationRecord:
        now = self._clock()
        record = IndicationRecord(actor_id=actor_id, timestamp=timestamp or now)
        lock = self._acquire(actor_id, create=True)
        try:
            self._logs.setdefault(actor_id, []).append(record)
            self._prune_locked(actor_id, now)
        finally:
            lock.release()
        return record

    def count_since(self, actor_id: str, cutoff: datetime) -> int:
        # Records past the horizon may survive until the actor's next write or sweep.
        floor = max(cutoff, self._clock() - self._retention)
        lock = self._acquire(actor_id)
        if lock is None:
            return 0
        try:
            return sum(1 for record in self._logs.get(actor_id, ()) if record.timestamp > floor)
        finally:
            lock.release()

    def prune(self, actor_id: str) -> None:
        lock = self._acquire(actor_id)
        if lock is None:
            return
        try:
            self._prune_locked(actor_id, self._clock())
        finally:
            lock.release()

    def sweep(self) -> int:
        """Prune every actor; returns how many actors were dropped."""

        dropped = 0
        for actor_id in list(self._locks):
            self.prune(actor_id)
            if actor_id not in self._locks:
                dropped += 1
        return dropped

    def _prune_locked(self, actor_id: str, now: datetime) -> None:
        horizon = now - self._retention
        retained = [record for record in self._logs.get(actor_id, ()) if record.timestamp > horizon]
        if retained:
            self._logs[actor_id] = retained
        else:
            self._drop_locked(actor_id)

    def _drop_locked(self, actor_id: str) -> None:
        self._logs.pop(actor_id, None)
        self._locks.pop(actor_id, None)

    def forget(self, actor_id: str) -> None:
        lock = self._acquire(actor_id)
        if lock is None:
            return
        try:
            self._drop_locked(actor_id)
        finally:
            lock.release()

    def reset(self) -> None:
        """Drop every actor, waiting for in-flight writes on each one."""

        with self._registry_lock:
            for actor_id in list(self._locks):
                lock = self._locks.get(actor_id)
                if lock is None:
                    continue
                with lock:
                    self._drop_locked(actor_id)


__all__ = ["Clock", "IndicationHistory", "IndicationRecord", "utcnow"]
