from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from core.models import DialogState

DEFAULT_SESSION_TTL_MINUTES = 15


class SessionStoreProtocol(Protocol):
    def get(self, token: str) -> list[DialogState] | None: ...

    def put(self, token: str, stack: Sequence[DialogState], ttl_sec: float | None = None) -> None: ...

    def delete(self, token: str) -> None: ...

    def purge_expired(self) -> int: ...


@dataclass(slots=True)
class _Entry:
    stack: tuple[DialogState, ...]
    expires_at: float


class MemorySessionStore:
    """Process-local session stacks with a fixed idle expiry.

    Expired entries are invisible to `get` straight away and physically
    removed either on that read or by `purge_expired`.
    """

    def __init__(
        self,
        ttl_minutes: float = DEFAULT_SESSION_TTL_MINUTES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_sec = max(1.0, float(ttl_minutes) * 60.0)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._guard = threading.Lock()

    def get(self, token: str) -> list[DialogState] | None:
        key = _token_key(token)
        if not key:
            return None
        now = self._clock()
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            return list(entry.stack)

    def put(self, token: str, stack: Sequence[DialogState], ttl_sec: float | None = None) -> None:
        key = _token_key(token)
        if not key:
            raise ValueError("session token is empty")
        frozen = tuple(stack)
        if not frozen:
            raise ValueError("session stack must not be empty")
        ttl = self.ttl_sec if ttl_sec is None else max(0.0, float(ttl_sec))
        with self._guard:
            self._entries[key] = _Entry(stack=frozen, expires_at=self._clock() + ttl)

    def delete(self, token: str) -> None:
        key = _token_key(token)
        with self._guard:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._guard:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)


class SessionReaper:
    """Daemon thread calling `purge_expired` on a fixed interval."""

    def __init__(self, store: SessionStoreProtocol, interval_sec: float = 60.0) -> None:
        self.store = store
        self.interval_sec = max(1.0, float(interval_sec))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-reaper", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval_sec)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_sec):
            self.store.purge_expired()


def _token_key(token: str | None) -> str:
    return str(token or "").strip()
