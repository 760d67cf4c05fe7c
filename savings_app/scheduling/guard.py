"""In-flight execution guard."""

import threading


class InFlightGuard:
    """
    Process-local set of pools with an execution in progress.

    acquire() is a test-and-set: at most one caller holds a pool at a time.
    The holder must release() when its execution ends, successful or not.
    """

    def __init__(self) -> None:
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def acquire(self, pool_id: str) -> bool:
        """Mark pool_id as executing; False if it already is."""
        with self._lock:
            if pool_id in self._in_flight:
                return False
            self._in_flight.add(pool_id)
            return True

    def release(self, pool_id: str) -> None:
        with self._lock:
            self._in_flight.discard(pool_id)

    def is_held(self, pool_id: str) -> bool:
        with self._lock:
            return pool_id in self._in_flight

    def count(self) -> int:
        with self._lock:
            return len(self._in_flight)
