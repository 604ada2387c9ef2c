"""Per-key locks serializing mutations of the same nickname or device."""

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """A lazily populated set of mutexes, one per key.

    Entries are reference counted and dropped once no caller holds or waits
    on them, so the table only grows with concurrent activity.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, list] = {}  # key -> [lock, refcount]

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._entries[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: tuple[str, str]) -> Iterator[None]:
        """Hold the locks for all ``keys``.

        Keys are acquired in sorted order so two callers locking overlapping
        sets cannot deadlock.
        """
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        acquired: list[threading.Lock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in ordered:
                self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


def nickname_key(nickname: str) -> tuple[str, str]:
    return ("nickname", nickname)


def device_key(device_uuid: str) -> tuple[str, str]:
    return ("device", device_uuid)


# Shared by the identity resolver and the presence store
registry_locks = KeyedLock()
