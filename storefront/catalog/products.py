from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Callable, Iterable, Protocol

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.persistence import pg
from storefront.persistence.models import ProductModel

SessionFactory = Callable[[], AbstractContextManager[Session]]


class Product(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: int
    discount_percent: float | None = None
    stock_quantity: int = 0
    is_active: bool = True
    shipping_services: Any = None


class ProductCatalog(Protocol):
    async def get_product(self, product_id: str) -> Product | None:
        ...

    async def get_products(self, product_ids: Iterable[str]) -> list[Product]:
        ...


class SqlProductCatalog:
    def __init__(self, session_factory: SessionFactory | None = None, active_only: bool = True):
        self._session_factory = session_factory
        self.active_only = active_only

    def _scope(self) -> AbstractContextManager[Session]:
        factory = self._session_factory or pg.session_scope
        return factory()

    async def get_product(self, product_id: str) -> Product | None:
        with self._scope() as session:
            row = session.get(ProductModel, product_id)
            if row is None or (self.active_only and not row.is_active):
                return None
            return Product.model_validate(row)

    async def get_products(self, product_ids: Iterable[str]) -> list[Product]:
        ids = sorted({str(pid) for pid in product_ids if pid})
        if not ids:
            return []
        stmt = select(ProductModel).where(ProductModel.id.in_(ids))
        if self.active_only:
            stmt = stmt.where(ProductModel.is_active.is_(True))
        with self._scope() as session:
            return [Product.model_validate(row) for row in session.scalars(stmt).all()]
