from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Mapping

from storefront.cart.local_storage import LocalCartStorage
from storefront.cart.sync import CartSyncer
from storefront.core.errors import CorruptLocalStateError

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


class CartStore:
    """Canonical cart state for one browsing context.

    Mutations replace the snapshot, persist it locally, notify every
    subscriber synchronously and, while a user is attached, schedule a
    debounced remote sync. The snapshot handed out is read-only.

    A store loaded from a corrupt blob sets ``corrupt`` and leaves the blob
    untouched until ``reset_local_state`` is called.
    """

    def __init__(
        self,
        initial: Mapping[str, int] | None = None,
        storage: LocalCartStorage | None = None,
        syncer: CartSyncer | None = None,
    ):
        self.storage = storage
        self.syncer = syncer
        self._user_id: str | None = None
        self.corrupt = False
        self._listeners: list[Listener] = []
        self._map: Mapping[str, int] = MappingProxyType(_clean(initial or {}))

    @classmethod
    def load(cls, storage: LocalCartStorage, syncer: CartSyncer | None = None) -> "CartStore":
        try:
            initial = storage.read()
        except CorruptLocalStateError:
            logger.warning("local cart at %s is corrupt; starting with an empty cart", storage.path)
            cart = cls(storage=storage, syncer=syncer)
            cart.corrupt = True
            return cart
        return cls(initial=initial, storage=storage, syncer=syncer)

    # views

    def snapshot(self) -> Mapping[str, int]:
        return self._map

    def lines(self) -> list[CartLine]:
        return [CartLine(product_id=pid, quantity=qty) for pid, qty in self._map.items()]

    @property
    def total_items(self) -> int:
        return sum(self._map.values())

    def quantity_of(self, product_id: str) -> int:
        return self._map.get(product_id, 0)

    def __len__(self) -> int:
        return len(self._map)

    # subscription

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("cart listener failed")

    # sync attachment

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def attach_user(self, user_id: str) -> None:
        self._user_id = user_id

    def detach_user(self) -> None:
        self._user_id = None
        if self.syncer is not None:
            self.syncer.cancel()

    # mutations

    def _set(self, next_map: dict[str, int], *, sync: bool = True, persist: bool = True) -> None:
        self._map = MappingProxyType(next_map)
        if persist and self.storage is not None and not self.corrupt:
            try:
                self.storage.write(next_map)
            except OSError:
                logger.warning("failed to write local cart to %s", self.storage.path, exc_info=True)
        self._emit()
        if sync and self._user_id and self.syncer is not None:
            self.syncer.schedule(self._user_id, next_map)

    def add(self, product_id: str, amount: int = 1) -> None:
        next_map = dict(self._map)
        quantity = next_map.get(product_id, 0) + amount
        if quantity <= 0:
            next_map.pop(product_id, None)
        else:
            next_map[product_id] = quantity
        self._set(next_map)

    def update(self, product_id: str, quantity: int) -> None:
        next_map = dict(self._map)
        if quantity <= 0:
            next_map.pop(product_id, None)
        else:
            next_map[product_id] = quantity
        self._set(next_map)

    def remove(self, product_id: str) -> None:
        next_map = dict(self._map)
        next_map.pop(product_id, None)
        self._set(next_map)

    def clear(self) -> None:
        self._set({})

    async def clear_immediate(self) -> bool:
        """Empty the cart and push the empty snapshot right away when possible."""
        self._set({}, sync=False)
        if not self._user_id or self.syncer is None:
            return True
        return await self.syncer.push_now(self._user_id, {})

    def replace(self, snapshot: Mapping[str, int], *, sync: bool = True) -> None:
        self._set(_clean(snapshot), sync=sync)

    def reload(self) -> None:
        """Adopt the locally stored blob written by another context."""
        if self.storage is None:
            return
        try:
            stored = self.storage.read()
        except CorruptLocalStateError:
            logger.warning("ignoring corrupt local cart update from %s", self.storage.path)
            return
        self.corrupt = False
        self._set(stored, sync=False, persist=False)

    def reset_local_state(self) -> None:
        """Replace a corrupt stored blob with the in-memory cart."""
        self.corrupt = False
        if self.storage is not None:
            self.storage.write(dict(self._map))
            logger.info("local cart at %s reset", self.storage.path)


def _clean(snapshot: Mapping[str, int]) -> dict[str, int]:
    return {str(pid): int(qty) for pid, qty in snapshot.items() if int(qty) > 0}
