from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import httpx
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from storefront.core.config import Settings, get_settings
from storefront.persistence import pg
from storefront.persistence.models import CartModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def items_to_snapshot(items: Any) -> dict[str, int]:
    snapshot: dict[str, int] = {}
    if not isinstance(items, list):
        return snapshot
    for item in items:
        if not isinstance(item, dict):
            continue
        product_id = item.get("product_id")
        try:
            qty = int(item.get("quantity") or 0)
        except (TypeError, ValueError):
            continue
        if not product_id or qty <= 0:
            continue
        snapshot[str(product_id)] = snapshot.get(str(product_id), 0) + qty
    return snapshot


def snapshot_to_items(snapshot: dict[str, int]) -> list[dict[str, Any]]:
    return [{"product_id": product_id, "quantity": qty} for product_id, qty in snapshot.items() if qty > 0]


class CartRepository:
    """Row-level access to the remote cart record (one row per user)."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> CartModel | None:
        return self.session.scalar(select(CartModel).where(CartModel.user_id == user_id))

    def get_items(self, user_id: str) -> list[dict[str, Any]]:
        row = self.get(user_id)
        if row is None or not isinstance(row.items, list):
            return []
        return list(row.items)

    def upsert(self, user_id: str, items: list[dict[str, Any]]) -> CartModel:
        row = self.get(user_id)
        now = datetime.now(timezone.utc)
        if row is None:
            row = CartModel(user_id=user_id, items=items, updated_at=now)
            self.session.add(row)
        else:
            row.items = items
            row.updated_at = now
        self.session.flush()
        return row

    def merge(self, user_id: str, incoming: list[dict[str, Any]]) -> CartModel:
        merged = items_to_snapshot(self.get_items(user_id))
        for product_id, qty in items_to_snapshot(incoming).items():
            merged[product_id] = merged.get(product_id, 0) + qty
        return self.upsert(user_id, snapshot_to_items(merged))

    def remove_product(self, user_id: str, product_id: str) -> CartModel:
        remaining = [item for item in self.get_items(user_id) if str(item.get("product_id")) != str(product_id)]
        return self.upsert(user_id, remaining)

    def delete(self, user_id: str) -> None:
        self.session.execute(delete(CartModel).where(CartModel.user_id == user_id))


class RemoteCartStore(Protocol):
    backend_name: str

    async def fetch(self, user_id: str) -> dict[str, int]:
        ...

    async def upsert(self, user_id: str, snapshot: dict[str, int]) -> None:
        ...

    async def delete(self, user_id: str) -> None:
        ...


class SqlRemoteCartStore:
    backend_name = "sql"

    def __init__(self, session_factory: SessionFactory | None = None):
        self._session_factory = session_factory

    def _scope(self) -> AbstractContextManager[Session]:
        factory = self._session_factory or pg.session_scope
        return factory()

    async def fetch(self, user_id: str) -> dict[str, int]:
        with self._scope() as session:
            return items_to_snapshot(CartRepository(session).get_items(user_id))

    async def upsert(self, user_id: str, snapshot: dict[str, int]) -> None:
        with self._scope() as session:
            CartRepository(session).upsert(user_id, snapshot_to_items(snapshot))

    async def delete(self, user_id: str) -> None:
        with self._scope() as session:
            CartRepository(session).delete(user_id)


class HttpRemoteCartStore:
    backend_name = "http"

    def __init__(self, access_token: str, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.cart_api_url.rstrip("/")
        self.timeout = max(1, self.settings.cart_api_timeout_seconds)
        self.access_token = access_token

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

    async def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(method, url, headers=self._headers(), json=json_body)
        response.raise_for_status()
        payload = response.json()
        if isinstance(payload, dict):
            return payload
        return {"items": payload}

    async def fetch(self, user_id: str) -> dict[str, int]:
        # The endpoint resolves the user from the bearer token.
        payload = await self._request("GET", "/cart")
        return items_to_snapshot(payload.get("items"))

    async def upsert(self, user_id: str, snapshot: dict[str, int]) -> None:
        await self._request("POST", "/cart", json_body={"items": snapshot_to_items(snapshot)})

    async def delete(self, user_id: str) -> None:
        await self._request("DELETE", "/cart")


def build_remote_cart(settings: Settings | None = None, access_token: str | None = None) -> RemoteCartStore:
    cfg = settings or get_settings()
    if cfg.remote_cart_backend == "http":
        if not access_token:
            raise ValueError("http remote cart backend requires an access token")
        return HttpRemoteCartStore(access_token, cfg)
    return SqlRemoteCartStore()
