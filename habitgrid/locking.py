from __future__ import annotations
import threading
from contextlib import contextmanager
from loguru import logger

from .errors import LockTimeoutError


class RequestLock:
    """Process-wide lock serializing whole requests, with a bounded wait."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, timeout: float | None = None):
        wait = self.timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            logger.warning(f"Request lock not acquired within {wait}s")
            raise LockTimeoutError(f"Server busy, could not acquire lock within {wait:g}s")
        try:
            yield self
        finally:
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()
