"""
Anti-brute-force guard for code retrieval.

- Max `max_attempts` attempts per client identity
- Cooldown after the limit is exceeded
- Resets on successful retrieval

State (open or cooling) is derived from timestamps on every check, so no
timer is needed to end a cooldown.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Union

from codedrop.security import log_security_event

logger = logging.getLogger(__name__)


@dataclass
class AttemptRecord:
    """Brute-force state for one client identity."""
    failure_count: int = 0
    last_attempt_at: float = 0.0
    cooldown_until: float = 0.0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    evicted: bool = False

    def is_cooling(self, now: float) -> bool:
        return self.cooldown_until > now


@dataclass(frozen=True)
class Allow:
    attempts_used: int
    attempts_remaining: int


@dataclass(frozen=True)
class Deny:
    cooldown_remaining_seconds: int


GuardDecision = Union[Allow, Deny]


class RetrievalGuard:
    """
    Tracks retrieval attempts per client identity.

    Each record has its own lock so updates for one identity are
    linearizable while other identities proceed independently.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        cooldown_seconds: float = 30,
        stale_after_seconds: float = 120,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.cooldown_seconds = cooldown_seconds
        self.stale_after_seconds = max(cooldown_seconds, stale_after_seconds)
        self.clock = clock
        self._records: Dict[str, AttemptRecord] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _record_for(self, identity: str) -> AttemptRecord:
        with self._registry_lock:
            record = self._records.get(identity)
            if record is None:
                record = AttemptRecord()
                self._records[identity] = record
            return record

    def check(self, identity: str) -> GuardDecision:
        """Count an attempt for `identity` and decide whether it may proceed."""
        while True:
            record = self._record_for(identity)
            with record.lock:
                # Lost a race with sweep(); fetch the replacement record.
                if record.evicted:
                    continue
                return self._advance(identity, record, self.clock())

    def _advance(self, identity: str, record: AttemptRecord, now: float) -> GuardDecision:
        if record.is_cooling(now):
            return Deny(math.ceil(record.cooldown_until - now))

        record.failure_count += 1
        record.last_attempt_at = now

        if record.failure_count > self.max_attempts:
            record.cooldown_until = now + self.cooldown_seconds
            record.failure_count = 0
            log_security_event("retrieval_cooldown", {"identity": identity})
            return Deny(math.ceil(self.cooldown_seconds))

        return Allow(
            attempts_used=record.failure_count,
            attempts_remaining=self.max_attempts - record.failure_count,
        )

    def record_success(self, identity: str):
        """A successful retrieval fully clears the identity's history."""
        with self._registry_lock:
            record = self._records.pop(identity, None)
        if record is not None:
            with record.lock:
                record.evicted = True

    def attempts_used(self, identity: str) -> int:
        record = self._records.get(identity)
        return record.failure_count if record else 0

    def sweep(self) -> int:
        """Evict idle records that are not cooling down."""
        now = self.clock()
        evicted = 0
        for identity, record in list(self._records.items()):
            with record.lock:
                if record.evicted or record.is_cooling(now):
                    continue
                if now - record.last_attempt_at <= self.stale_after_seconds:
                    continue
                record.evicted = True
            with self._registry_lock:
                if self._records.get(identity) is record:
                    del self._records[identity]
            evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} idle attempt record(s)")
        return evicted

    def clear(self):
        with self._registry_lock:
            records = list(self._records.values())
            self._records.clear()
        for record in records:
            with record.lock:
                record.evicted = True
