"""
Online/offline state for the remote resource server.

The monitor is a two-state machine. Probe results and transport failures
reported by the client drive the transitions. A logical operation pins the
state once on entry (see ConnectivityMonitor.operation), so all reads and
writes of that operation go to the same backing store.
"""

import logging
import threading
import time
from contextlib import contextmanager

import requests

from config import API_BASE_URL, CONNECTIVITY_RECHECK_SECONDS, PROBE_PATH, REQUEST_TIMEOUT
from utils.constants import ConnectionState

logger = logging.getLogger(__name__)


def is_offline(session: requests.Session, base_url: str = API_BASE_URL,
               timeout: float = REQUEST_TIMEOUT) -> bool:
    """Ping a known endpoint. Any failure, including a non-2xx, counts as offline."""
    try:
        response = session.get(f"{base_url}{PROBE_PATH}", timeout=timeout)
        response.raise_for_status()
        return False
    except requests.RequestException as e:
        logger.info(f"Probe failed: {e}")
        return True


class ConnectivityMonitor:
    def __init__(
        self,
        session: requests.Session,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        recheck_seconds: float = CONNECTIVITY_RECHECK_SECONDS,
        clock=time.monotonic,
    ):
        self.session = session
        self.base_url = base_url
        self.timeout = timeout
        self.recheck_seconds = recheck_seconds
        self._clock = clock
        self.state = ConnectionState.OFFLINE
        self._checked_at: float | None = None
        self._local = threading.local()
        # Cascade workers report transport failures from pool threads
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self.state is ConnectionState.ONLINE

    def check(self) -> ConnectionState:
        """Probe now and transition accordingly."""
        offline = is_offline(self.session, self.base_url, self.timeout)
        with self._lock:
            self._checked_at = self._clock()
            self._transition(ConnectionState.OFFLINE if offline else ConnectionState.ONLINE)
            return self.state

    def mark_offline(self, reason: str = '') -> None:
        with self._lock:
            self._checked_at = self._clock()
            self._transition(ConnectionState.OFFLINE, reason)

    def _is_stale(self) -> bool:
        if self._checked_at is None:
            return True
        return self._clock() - self._checked_at >= self.recheck_seconds

    def _transition(self, new_state: ConnectionState, reason: str = '') -> None:
        if new_state is self.state:
            return
        suffix = f" ({reason})" if reason else ''
        logger.info(f"Connectivity: {self.state.value} -> {new_state.value}{suffix}")
        self.state = new_state

    # ── Pinned operations ─────────────────────────────────────

    @property
    def pinned(self) -> ConnectionState | None:
        return getattr(self._local, 'pinned', None)

    @property
    def depth(self) -> int:
        return getattr(self._local, 'depth', 0)

    @contextmanager
    def operation(self):
        """
        Yield True when the operation should go to the server, False for the mirror.

        Nested operations inherit the outer pin; only the outermost one probes.
        """
        if self.depth == 0:
            if self._is_stale():
                self.check()
            self._local.pinned = self.state
        self._local.depth = self.depth + 1
        try:
            yield self._local.pinned is ConnectionState.ONLINE
        finally:
            self._local.depth -= 1
            if self._local.depth == 0:
                self._local.pinned = None

    def repin_offline(self) -> None:
        """Switch the current outermost operation to the mirror after a failure."""
        if self.depth > 0:
            self._local.pinned = ConnectionState.OFFLINE
