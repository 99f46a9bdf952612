import logging
from contextlib import contextmanager
from threading import Lock
from typing import Hashable, Iterator

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from backend.core import config
from backend.core.errors import ContendedSlotError


logger = logging.getLogger(__name__)


class KeyedLocks:
    """One in-process mutex per key, acquired with a bounded wait."""

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: dict[Hashable, Lock] = {}

    def _lock_for(self, key: Hashable) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(timeout=timeout):
            logger.info('Timed out after %.2fs waiting for lock %r', timeout, key)
            raise ContendedSlotError(
                'Another request is updating this schedule. Please retry.',
                lock_key=str(key),
            )
        try:
            yield
        finally:
            lock.release()


def resolve_lock_timeout(value: float | None) -> float:
    return config.BOOKING_LOCK_TIMEOUT_SECONDS if value is None else value


def retry_on_contention() -> Retrying:
    """One automatic retry after a fixed backoff, for ContendedSlotError only."""
    return Retrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(config.BOOKING_RETRY_BACKOFF_SECONDS),
        retry=retry_if_exception_type(ContendedSlotError),
        reraise=True,
    )


# Serializes check-then-insert per provider.
provider_locks = KeyedLocks()

# Serializes window writes per (provider, weekday).
schedule_locks = KeyedLocks()
