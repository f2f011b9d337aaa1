"""Per-product locks so one product never has two concurrent writers."""

import asyncio
from contextlib import asynccontextmanager


class ProductLockRegistry:
    """asyncio.Lock per product id, acquired in ascending id order."""

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}  # Holders plus waiters per product

    def __len__(self) -> int:
        return len(self._locks)

    def _checkout(self, product_id: int) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = self._locks[product_id] = asyncio.Lock()
        self._users[product_id] = self._users.get(product_id, 0) + 1
        return lock

    def _checkin(self, product_id: int) -> None:
        remaining = self._users[product_id] - 1
        if remaining:
            self._users[product_id] = remaining
        else:
            del self._users[product_id]
            del self._locks[product_id]

    @asynccontextmanager
    async def hold(self, *product_ids: int):
        """Hold the locks of every given product (sorted, so merges never deadlock)."""
        ordered = sorted(set(product_ids))
        checked_out: list[int] = []
        acquired: list[asyncio.Lock] = []
        try:
            for product_id in ordered:
                lock = self._checkout(product_id)
                checked_out.append(product_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for product_id in checked_out:
                self._checkin(product_id)


# Global instance
product_locks = ProductLockRegistry()
