"""Per-transaction single-flight guard.

Refunds and cancellations against one transaction must not overlap: each
one validates against the full refund history, so the second request has
to see what the first one wrote.  The guard serializes them within this
process; the repository's version check covers other processes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class TransactionGuard:

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, transaction_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(transaction_id, asyncio.Lock())
        self._waiters[transaction_id] = self._waiters.get(transaction_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[transaction_id] -= 1
            if self._waiters[transaction_id] == 0:
                del self._waiters[transaction_id]
                del self._locks[transaction_id]

    def is_busy(self, transaction_id: str) -> bool:
        lock = self._locks.get(transaction_id)
        return lock is not None and lock.locked()
