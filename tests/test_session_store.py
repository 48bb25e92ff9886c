from __future__ import annotations

import unittest

from core.models import LookupState, MenuState, RegistrationState
from sessions.store import MemorySessionStore, SessionReaper


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _menu() -> MenuState:
    return MenuState(level="menu", message="menu", identity_id="id-1", display_name="Kwame")


class MemorySessionStoreTest(unittest.TestCase):
    def test_put_get_delete(self) -> None:
        store = MemorySessionStore()
        stack = [_menu(), LookupState(level="lookup", message="lookup")]
        store.put("s1", stack)

        loaded = store.get("s1")
        self.assertEqual(loaded, stack)
        store.delete("s1")
        self.assertIsNone(store.get("s1"))

    def test_returned_stack_is_a_copy(self) -> None:
        store = MemorySessionStore()
        store.put("s1", [_menu()])
        loaded = store.get("s1")
        assert loaded is not None
        loaded.append(LookupState(level="lookup", message="lookup"))
        self.assertEqual(len(store.get("s1") or []), 1)

    def test_entry_expires_after_ttl(self) -> None:
        clock = _FakeClock()
        store = MemorySessionStore(ttl_minutes=15, clock=clock)
        store.put("s1", [RegistrationState(level="full_name", message="Enter Full Name:")])

        clock.now += 15 * 60 - 1
        self.assertIsNotNone(store.get("s1"))
        clock.now += 1
        self.assertIsNone(store.get("s1"))
        self.assertEqual(store.purge_expired(), 0)

    def test_put_refreshes_expiry(self) -> None:
        clock = _FakeClock()
        store = MemorySessionStore(ttl_minutes=1, clock=clock)
        store.put("s1", [_menu()])
        clock.now += 50
        store.put("s1", [_menu()])
        clock.now += 50
        self.assertIsNotNone(store.get("s1"))

    def test_purge_expired(self) -> None:
        clock = _FakeClock()
        store = MemorySessionStore(ttl_minutes=1, clock=clock)
        store.put("old", [_menu()])
        clock.now += 30
        store.put("new", [_menu()])
        clock.now += 31

        self.assertEqual(store.purge_expired(), 1)
        self.assertIsNone(store.get("old"))
        self.assertIsNotNone(store.get("new"))

    def test_rejects_empty_stack_and_token(self) -> None:
        store = MemorySessionStore()
        with self.assertRaises(ValueError):
            store.put("s1", [])
        with self.assertRaises(ValueError):
            store.put("  ", [_menu()])
        self.assertIsNone(store.get(""))


class SessionReaperTest(unittest.TestCase):
    def test_start_and_stop(self) -> None:
        store = MemorySessionStore()
        reaper = SessionReaper(store, interval_sec=1)
        reaper.start()
        reaper.start()
        reaper.stop()
        self.assertIsNone(reaper._thread)


if __name__ == "__main__":
    unittest.main()
