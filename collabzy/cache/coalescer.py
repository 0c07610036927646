"""
In-flight read tracking so concurrent misses for one cache key share a
gateway call.

A forced read never joins a call that started before it. It supersedes the
key's flight instead, and callers arriving afterwards join the forced one.
"""
import itertools
import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable

logger = logging.getLogger("cache.coalescer")


@dataclass
class Flight:
    """One gateway call and the callers sharing it."""
    generation: int
    future: Future = field(default_factory=Future)
    joined: int = 0


class RequestCoalescer:
    """Maps each cache key to at most one open flight."""

    def __init__(self, timeout: float = 30.0):
        """
        Args:
            timeout: Max seconds a joined caller waits for the open flight
        """
        self._flights: Dict[Hashable, Flight] = {}
        self._lock = threading.Lock()
        self._timeout = timeout
        self._generations = itertools.count(1)
        self._counts = {"started": 0, "joined": 0, "superseded": 0}

    def join_or_start(self, key: Hashable, fetch_fn: Callable[[], Any], force: bool = False) -> Any:
        """
        Share the open flight for key, or start one.

        Args:
            key: Cache key of the read
            fetch_fn: Performs the gateway call
            force: Start a new flight even if one is open

        Raises:
            TimeoutError: If a joined caller waits longer than the timeout
            Exception: Whatever fetch_fn raised
        """
        with self._lock:
            flight = self._flights.get(key)
            if flight is not None and not force:
                flight.joined += 1
                self._counts["joined"] += 1
                owner = False
            else:
                if flight is not None:
                    self._counts["superseded"] += 1
                    logger.debug(f"Forced read supersedes flight {flight.generation} for {key}")
                flight = Flight(generation=next(self._generations))
                self._flights[key] = flight
                self._counts["started"] += 1
                owner = True

        if owner:
            return self._fly(key, flight, fetch_fn)

        try:
            return flight.future.result(timeout=self._timeout)
        except FutureTimeoutError:
            if flight.future.done():
                raise
            logger.error(f"Timeout waiting for in-flight fetch: {key}")
            raise TimeoutError(f"Fetch for {key} timed out after {self._timeout}s") from None

    def _fly(self, key: Hashable, flight: Flight, fetch_fn: Callable[[], Any]) -> Any:
        try:
            result = fetch_fn()
        except Exception as e:
            self._land(key, flight)
            flight.future.set_exception(e)
            raise
        self._land(key, flight)
        flight.future.set_result(result)
        return result

    def _land(self, key: Hashable, flight: Flight) -> None:
        # A superseded flight must not remove its replacement
        with self._lock:
            if self._flights.get(key) is flight:
                del self._flights[key]

    @property
    def active_requests(self) -> int:
        with self._lock:
            return len(self._flights)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"active_requests": len(self._flights), **self._counts}
