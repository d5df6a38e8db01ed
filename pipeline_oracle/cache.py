"""In-process memo for forecast results keyed by the oracle cache key."""

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

from pipeline_oracle.config import CACHE_MAX_ENTRIES

logger = logging.getLogger(__name__)


class ForecastCache:
    """FIFO-bounded cache with at most one live computation per key.

    A caller that finds a computation already running for its key waits on
    that computation instead of starting a second one. `latest(req_id)`
    returns the most recent finished result for a requisition, which can be
    shown while a recomputation for new knobs or data is in flight, for as
    long as that result is still held.
    """

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, Any]" = OrderedDict()
        self._in_flight: Dict[str, Future] = {}
        self._latest_keys: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def latest(self, req_id: str) -> Optional[Any]:
        with self._lock:
            key = self._latest_keys.get(req_id)
            return None if key is None else self._entries.get(key)

    def get_or_compute(self, key: str, compute: Callable[[], Any],
                       req_id: Optional[str] = None) -> Any:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            logger.debug("Waiting on in-flight computation for %s", key)
            return future.result()

        try:
            result = compute()
        except BaseException as exc:
            with self._lock:
                del self._in_flight[key]
            future.set_exception(exc)
            raise

        with self._lock:
            if req_id is not None:
                self._latest_keys[req_id] = key
            self._store(key, result)
            del self._in_flight[key]
        future.set_result(result)
        return result

    def _store(self, key: str, result: Any) -> None:
        self._entries[key] = result
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            for req_id in [r for r, k in self._latest_keys.items() if k == evicted]:
                del self._latest_keys[req_id]
            logger.debug("Evicted %s from forecast cache", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._latest_keys.clear()
