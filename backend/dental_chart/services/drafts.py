"""In-memory holding area for charts that are being edited but not yet saved.

Drafts live for the lifetime of the process. Nothing here touches the
database; a draft is dropped only after its chart has been saved or when
the cache is cleared explicitly.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.clock import Clock, SystemClock

logger = logging.getLogger("dental_chart.drafts")


@dataclass(frozen=True)
class DraftKey:
    patient_id: str
    domain: AssessmentDomain


@dataclass(frozen=True)
class DraftEntry:
    state: Any
    saved_at_ms: int


def clone_state(state: Any) -> Any:
    if isinstance(state, BaseModel):
        return state.model_copy(deep=True)
    return copy.deepcopy(state)


class DraftCache:
    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: dict[DraftKey, DraftEntry] = {}
        self._locks: dict[DraftKey, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped by every ``clear_all``; writes tagged with an older value are dropped."""
        with self._registry_lock:
            return self._generation

    def lock_for(self, key: DraftKey) -> threading.RLock:
        """Return the lock serialising writes for ``key``.

        Locks are never discarded while the cache lives: there is one per
        patient and domain ever edited, and a thread may still be waiting on
        a lock whose draft has just been cleared.
        """
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def save_draft(self, key: DraftKey, state: Any, *, generation: int | None = None) -> bool:
        entry = DraftEntry(state=clone_state(state), saved_at_ms=self._clock.now_ms())
        with self.lock_for(key):
            with self._registry_lock:
                if generation is not None and generation != self._generation:
                    return False
                self._entries[key] = entry
        logger.debug("Draft stored for %s/%s", key.patient_id, key.domain.value)
        return True

    def load_draft(self, key: DraftKey) -> Any | None:
        entry = self.entry(key)
        if entry is None:
            return None
        return clone_state(entry.state)

    def entry(self, key: DraftKey) -> DraftEntry | None:
        with self.lock_for(key):
            with self._registry_lock:
                return self._entries.get(key)

    def has_draft(self, key: DraftKey) -> bool:
        return self.entry(key) is not None

    def clear_draft(self, key: DraftKey) -> None:
        with self.lock_for(key):
            with self._registry_lock:
                removed = self._entries.pop(key, None)
        if removed is not None:
            logger.debug("Draft cleared for %s/%s", key.patient_id, key.domain.value)

    def clear_all(self) -> None:
        with self._registry_lock:
            count = len(self._entries)
            self._entries.clear()
            self._generation += 1
        logger.info("Cleared %s drafts", count)

    def draft_keys(self, patient_id: str) -> list[DraftKey]:
        with self._registry_lock:
            keys = [key for key in self._entries if key.patient_id == patient_id]
        order = list(AssessmentDomain)
        return sorted(keys, key=lambda key: order.index(key.domain))


TimerFactory = Callable[[float, Callable[[], None]], Any]


@dataclass(frozen=True)
class _PendingWrite:
    token: object
    state: Any
    timer: Any
    generation: int


class DraftAutosaver:
    """Debounces draft writes per key.

    Each ``schedule`` replaces the pending write for its key. A timer that
    fires after it was replaced or cancelled does nothing, and one scheduled
    before a ``DraftCache.clear_all`` is dropped by the cache, so a late write
    can never bring back a draft that a save or a clear-all removed.
    """

    def __init__(
        self,
        cache: DraftCache,
        *,
        delay_seconds: float,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self.cache = cache
        self.delay_seconds = delay_seconds
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: dict[DraftKey, _PendingWrite] = {}

    def schedule(self, key: DraftKey, state: Any) -> None:
        token = object()
        snapshot = clone_state(state)
        timer = self._timer_factory(self.delay_seconds, lambda: self._fire(key, token))
        if hasattr(timer, "daemon"):
            timer.daemon = True
        write = _PendingWrite(token, snapshot, timer, self.cache.generation)
        with self._lock:
            previous = self._pending.get(key)
            self._pending[key] = write
        if previous is not None:
            previous.timer.cancel()
        timer.start()

    def pending(self, key: DraftKey) -> bool:
        with self._lock:
            return key in self._pending

    def flush(self, key: DraftKey) -> bool:
        with self._lock:
            pending = self._pending.get(key)
        if pending is None:
            return False
        pending.timer.cancel()
        return self._fire(key, pending.token)

    def cancel(self, key: DraftKey) -> None:
        with self.cache.lock_for(key):
            with self._lock:
                pending = self._pending.pop(key, None)
        if pending is not None:
            pending.timer.cancel()

    def cancel_all(self) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for write in pending:
            write.timer.cancel()

    def _fire(self, key: DraftKey, token: object) -> bool:
        # Holding the key lock keeps this write and a save's clear from interleaving.
        with self.cache.lock_for(key):
            with self._lock:
                pending = self._pending.get(key)
                if pending is None or pending.token is not token:
                    return False
                del self._pending[key]
            return self.cache.save_draft(key, pending.state, generation=pending.generation)
