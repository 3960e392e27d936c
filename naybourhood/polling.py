"""
Polling cache for remote collections.

A PollingQuery holds the last fetched value of one collection, refetches it
when it is older than its stale time, and can refresh itself on a fixed
interval from a background thread. Each successful fetch replaces the
cached value wholesale.
"""

import logging
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollingQuery(Generic[T]):
    """Cached result of a fetch function with stale-time and interval refresh."""

    def __init__(
        self,
        name: str,
        fetcher: Callable[[], T],
        stale_seconds: float = 60,
        refetch_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.fetcher = fetcher
        self.stale_seconds = stale_seconds
        self.refetch_interval_seconds = refetch_interval_seconds
        self._clock = clock

        self._lock = threading.Lock()
        self._fetch_lock = threading.Lock()
        self._data: Optional[T] = None
        self._has_data = False
        self._error: Optional[Exception] = None
        self._updated_at: Optional[float] = None
        self._fetch_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def data(self) -> Optional[T]:
        with self._lock:
            return self._data

    @property
    def error(self) -> Optional[Exception]:
        with self._lock:
            return self._error

    @property
    def fetch_count(self) -> int:
        with self._lock:
            return self._fetch_count

    @property
    def status(self) -> str:
        """'idle' before the first fetch, then 'success' or 'error'."""
        with self._lock:
            if self._error is not None:
                return "error"
            return "success" if self._has_data else "idle"

    @property
    def is_stale(self) -> bool:
        with self._lock:
            if self._updated_at is None:
                return True
            return self._clock() - self._updated_at >= self.stale_seconds

    def refetch(self) -> T:
        """Fetch now and replace the cached value. Errors are stored and re-raised."""
        with self._fetch_lock:
            try:
                data = self.fetcher()
            except Exception as e:
                with self._lock:
                    self._error = e
                raise

            with self._lock:
                self._data = data
                self._has_data = True
                self._error = None
                self._updated_at = self._clock()
                self._fetch_count += 1
            return data

    def get(self) -> T:
        """Cached value, refetched first when missing or stale."""
        with self._lock:
            fresh = self._has_data and self._updated_at is not None and (
                self._clock() - self._updated_at < self.stale_seconds
            )
            if fresh:
                return self._data
        return self.refetch()

    def invalidate(self) -> None:
        """Mark the cached value stale so the next get() refetches."""
        with self._lock:
            self._updated_at = None
        logger.debug(f"Invalidated query {self.name}")

    def start(self) -> None:
        """Start interval refresh in a daemon thread (no-op without an interval)."""
        if not self.refetch_interval_seconds or self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"poll-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Polling {self.name} every {self.refetch_interval_seconds}s")

    def stop(self, timeout: Optional[float] = 5) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self.refetch_interval_seconds):
            try:
                self.refetch()
            except Exception as e:
                logger.error(f"Background refresh of {self.name} failed: {e}")
        logger.info(f"Stopped polling {self.name}")
