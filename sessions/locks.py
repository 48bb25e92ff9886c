from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


class SessionBusyError(RuntimeError):
    def __init__(self, token: str, timeout_sec: float) -> None:
        super().__init__(f"session is busy: token={token} waited={timeout_sec}s")
        self.token = token
        self.timeout_sec = timeout_sec


@dataclass(slots=True)
class _TokenLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class SessionLockRegistry:
    """One mutex per session token, created on demand.

    An entry lives only while some caller holds or waits on it, so finished
    sessions do not accumulate locks.
    """

    def __init__(self, default_timeout_sec: float = 10.0) -> None:
        self.default_timeout_sec = max(0.0, float(default_timeout_sec))
        self._locks: dict[str, _TokenLock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, token: str, timeout_sec: float | None = None) -> Iterator[None]:
        timeout = self.default_timeout_sec if timeout_sec is None else max(0.0, float(timeout_sec))
        with self._guard:
            entry = self._locks.get(token)
            if entry is None:
                entry = _TokenLock()
                self._locks[token] = entry
            entry.users += 1

        acquired = entry.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                raise SessionBusyError(token, timeout)
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users <= 0 and self._locks.get(token) is entry:
                    del self._locks[token]

    def active_tokens(self) -> list[str]:
        with self._guard:
            return sorted(self._locks)
