from __future__ import annotations

import asyncio
import logging

from storefront.cart.remote import RemoteCartStore

logger = logging.getLogger(__name__)


class CartSyncer:
    """Single-slot debounced writer of the full cart snapshot to the remote row.

    A new ``schedule`` replaces the queued payload and cancels the pending
    timer, so only the latest snapshot is written. Writes are serialized by a
    lock and shielded from timer cancellation once started.
    """

    def __init__(self, remote: RemoteCartStore, debounce_seconds: float = 0.8):
        self.remote = remote
        self.debounce_seconds = max(0.0, debounce_seconds)
        self._pending: tuple[str, dict[str, int]] | None = None
        self._timer: asyncio.Task | None = None
        self._write_lock: asyncio.Lock | None = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def _lock(self) -> asyncio.Lock:
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        return self._write_lock

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def schedule(self, user_id: str, snapshot: dict[str, int]) -> None:
        self._pending = (user_id, dict(snapshot))
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running event loop; cart sync for user=%s deferred", user_id)
            return
        self._timer = loop.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        await asyncio.shield(self.flush())

    async def flush(self) -> bool:
        async with self._lock():
            pending, self._pending = self._pending, None
            if pending is None:
                return True
            user_id, snapshot = pending
            try:
                await self.remote.upsert(user_id, snapshot)
            except Exception:
                logger.warning("background cart sync failed for user=%s", user_id, exc_info=True)
                return False
            logger.debug("cart synced for user=%s items=%s", user_id, len(snapshot))
            return True

    async def push_now(self, user_id: str, snapshot: dict[str, int]) -> bool:
        """Write immediately, superseding anything queued. Falls back to the debounced path on failure."""
        self._cancel_timer()
        self._pending = None
        async with self._lock():
            try:
                await self.remote.upsert(user_id, dict(snapshot))
                return True
            except Exception:
                logger.warning("immediate cart push failed for user=%s; falling back to debounced sync", user_id, exc_info=True)
        self.schedule(user_id, snapshot)
        return False

    def cancel(self) -> None:
        self._cancel_timer()
        self._pending = None

    async def drain(self) -> None:
        """Wait for the scheduled write (if any) to finish."""
        timer = self._timer
        if timer is not None:
            await asyncio.wait([timer])
        if self._pending is not None:
            await self.flush()
        # a shielded write may outlive its cancelled timer
        async with self._lock():
            pass
