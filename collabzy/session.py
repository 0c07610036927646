"""
User sessions and their per-session data services.

Authentication happens elsewhere; a session only carries the bearer token
and user document the caller obtained from the auth service.
"""
import threading
import time
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from config.settings import settings

if TYPE_CHECKING:
    from collabzy.data_service import DataService

logger = logging.getLogger("collabzy.session")


@dataclass
class Session:
    """The signed-in user, if any."""
    token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role")

    @property
    def is_brand(self) -> bool:
        return self.role == "brand"

    @property
    def is_influencer(self) -> bool:
        return self.role == "influencer"


@dataclass
class SessionSlot:
    service: "DataService"
    last_seen: float


class SessionRegistry:
    """
    One DataService per bearer token.

    Each service owns its own gateway and cache, so cached data never leaks
    between users. Requests without a token share one anonymous service,
    which can only read the public influencer directory.

    Sessions expire after idle_seconds without a request, and once more than
    max_sessions are open the least recently used one is closed.
    """

    def __init__(
        self,
        factory: Optional[Callable[[Session], "DataService"]] = None,
        max_sessions: Optional[int] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if factory is None:
            # Import here to avoid circular imports
            from collabzy.data_service import build_data_service
            factory = build_data_service
        self._factory = factory
        self._max_sessions = max(1, max_sessions if max_sessions is not None else settings.session_max_count)
        self._idle_seconds = idle_seconds if idle_seconds is not None else settings.session_idle_seconds
        self._clock = clock
        # Least recently used first
        self._slots: "OrderedDict[Optional[str], SessionSlot]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, token: Optional[str]) -> "DataService":
        """Get or create the service for token."""
        now = self._clock()
        with self._lock:
            closing = self._pop_expired(now)
            slot = self._slots.get(token)
            if slot is None:
                slot = SessionSlot(service=self._factory(Session(token=token)), last_seen=now)
                self._slots[token] = slot
                logger.info(f"Session started ({'authenticated' if token else 'anonymous'})")
                while len(self._slots) > self._max_sessions:
                    _, oldest = self._slots.popitem(last=False)
                    closing.append(oldest.service)
                    logger.info("Session evicted (registry full)")
            else:
                slot.last_seen = now
                self._slots.move_to_end(token)
        self._close(closing)
        return slot.service

    def _pop_expired(self, now: float) -> List["DataService"]:
        expired = []
        while self._slots:
            token, slot = next(iter(self._slots.items()))
            if now - slot.last_seen < self._idle_seconds:
                break
            del self._slots[token]
            expired.append(slot.service)
        if expired:
            logger.info(f"Expired {len(expired)} idle sessions")
        return expired

    @staticmethod
    def _close(services: List["DataService"]) -> None:
        for service in services:
            service.close()

    def cleanup_expired(self) -> int:
        """
        Close every session idle past the limit.

        Returns:
            Number of sessions closed
        """
        with self._lock:
            expired = self._pop_expired(self._clock())
        self._close(expired)
        return len(expired)

    def end(self, token: Optional[str]) -> bool:
        """
        Tear down the session for token and drop its cache.

        Returns:
            True if a session existed
        """
        with self._lock:
            slot = self._slots.pop(token, None)
        if slot is None:
            return False
        slot.service.close()
        logger.info("Session ended")
        return True

    def close_all(self) -> None:
        with self._lock:
            services = [slot.service for slot in self._slots.values()]
            self._slots.clear()
        self._close(services)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)
