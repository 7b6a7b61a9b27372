"""
Per-entity asyncio locks.

The dispatch service serialises every mutation on a ride, a driver or a
shuttle through one lock per entity key (``ride:<id>``, ``driver:<id>``,
``shuttle:<id>``).  "Driver becomes busy" and "ride records assignment"
therefore happen under both locks at once, and a second assignment racing
for the same driver sees the updated ``busy`` status.

Keys are always acquired in sorted order so two operations locking the
same pair can never deadlock.  A key's lock lives only while some caller
holds or waits for it, so one-off keys such as ``booking:<idempotency key>``
do not accumulate.
"""

from __future__ import annotations

import asyncio


class EntityLocks:
    def __init__(self) -> None:
        # key -> [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        return entry[0]

    def _checkin(self, key: str) -> None:
        entry = self._locks[key]
        entry[1] -= 1
        if entry[1] == 0:
            del self._locks[key]

    def locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return bool(entry and entry[0].locked())

    def hold(self, *keys: str) -> "HeldLocks":
        return HeldLocks(self, sorted({k for k in keys if k}))

    def __len__(self) -> int:
        return len(self._locks)


class HeldLocks:
    def __init__(self, registry: EntityLocks, keys: list[str]):
        self.registry = registry
        self.keys = keys
        self._acquired: list[tuple[str, asyncio.Lock]] = []

    async def acquire(self) -> None:
        try:
            for key in self.keys:
                lock = self.registry._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self.registry._checkin(key)
                    raise
                self._acquired.append((key, lock))
        except BaseException:
            self.release()
            raise

    def release(self) -> None:
        while self._acquired:
            key, lock = self._acquired.pop()
            lock.release()
            self.registry._checkin(key)

    # context-manager support
    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, *args):
        self.release()
