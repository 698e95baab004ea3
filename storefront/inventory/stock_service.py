from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.persistence import pg
from storefront.persistence.models import OrderItemModel, OrderModel, ProductModel, StockDecrementModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


@dataclass
class StockValidationResult:
    valid: bool
    reason: str | None = None
    valid_items: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class StockDecrementResult:
    success: bool
    order_id: str | None = None
    error: str | None = None
    updated_products: int = 0
    already_processed: bool = False


@dataclass
class StockAvailabilityResult:
    available: bool
    product_id: str
    required_quantity: int
    available_stock: int = 0
    error: str | None = None

    @property
    def remaining_after_purchase(self) -> int:
        return self.available_stock - self.required_quantity


class StockService(Protocol):
    async def validate_cart_stock(self, lines: list[StockLine]) -> StockValidationResult:
        ...

    async def decrement_stock_for_order(self, order_id: str) -> StockDecrementResult:
        ...

    async def restore_stock_for_order(self, order_id: str) -> StockDecrementResult:
        ...

    async def is_decremented(self, order_id: str) -> bool:
        ...


def _sum_by_product(lines: Iterable[StockLine]) -> dict[str, int]:
    totals: dict[str, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + int(line.quantity)
    return totals


class SqlStockService:
    """Stock checks and exactly-once adjustments against the products table.

    A ``stock_decrements`` row keyed by order id marks an order as processed;
    the decrement and the marker are committed together.
    """

    def __init__(self, session_factory: SessionFactory | None = None):
        self._session_factory = session_factory

    def _scope(self) -> AbstractContextManager[Session]:
        factory = self._session_factory or pg.session_scope
        return factory()

    async def validate_cart_stock(self, lines: list[StockLine]) -> StockValidationResult:
        if not lines:
            return StockValidationResult(valid=False, reason="cart is empty")

        requested = _sum_by_product(lines)
        with self._scope() as session:
            rows = session.scalars(select(ProductModel).where(ProductModel.id.in_(list(requested)))).all()
            products = {row.id: row for row in rows}

        valid_items: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []
        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None or not product.is_active:
                errors.append({"product_id": product_id, "error": "product not available"})
                continue
            item = {
                "product_id": product_id,
                "product_name": product.name,
                "required_quantity": quantity,
                "available_stock": product.stock_quantity,
            }
            if quantity > product.stock_quantity:
                errors.append({**item, "error": "insufficient stock"})
            else:
                valid_items.append(item)

        if errors:
            return StockValidationResult(
                valid=False,
                reason=f"insufficient stock for {len(errors)} product(s)",
                valid_items=valid_items,
                errors=errors,
            )
        return StockValidationResult(valid=True, valid_items=valid_items)

    async def check_stock_availability(self, product_id: str, quantity: int) -> StockAvailabilityResult:
        if not product_id or quantity <= 0:
            return StockAvailabilityResult(
                available=False,
                product_id=product_id,
                required_quantity=quantity,
                error="invalid product id or quantity",
            )
        with self._scope() as session:
            product = session.get(ProductModel, product_id)
            if product is None:
                return StockAvailabilityResult(
                    available=False,
                    product_id=product_id,
                    required_quantity=quantity,
                    error="product not found",
                )
            return StockAvailabilityResult(
                available=product.is_active and product.stock_quantity >= quantity,
                product_id=product_id,
                required_quantity=quantity,
                available_stock=product.stock_quantity,
            )

    async def is_decremented(self, order_id: str) -> bool:
        """True while the order holds a decrement that was not restored."""
        if not order_id:
            return False
        with self._scope() as session:
            marker = session.get(StockDecrementModel, order_id)
            return marker is not None and marker.status == "decremented"

    async def decrement_stock_for_order(self, order_id: str) -> StockDecrementResult:
        if not order_id:
            return StockDecrementResult(success=False, error="order id is required")
        try:
            with self._scope() as session:
                if session.get(StockDecrementModel, order_id) is not None:
                    return StockDecrementResult(success=True, order_id=order_id, already_processed=True)
                if session.get(OrderModel, order_id) is None:
                    return StockDecrementResult(success=False, order_id=order_id, error="order not found")

                items = session.scalars(select(OrderItemModel).where(OrderItemModel.order_id == order_id)).all()
                requested = _sum_by_product(StockLine(item.product_id, item.quantity) for item in items)
                products = {
                    row.id: row
                    for row in session.scalars(
                        select(ProductModel).where(ProductModel.id.in_(list(requested))).with_for_update()
                    ).all()
                }
                short = [
                    pid for pid, qty in requested.items() if pid not in products or products[pid].stock_quantity < qty
                ]
                if short:
                    return StockDecrementResult(
                        success=False,
                        order_id=order_id,
                        error=f"insufficient stock for products: {', '.join(sorted(short))}",
                    )
                for pid, qty in requested.items():
                    products[pid].stock_quantity -= qty
                session.add(
                    StockDecrementModel(
                        order_id=order_id,
                        status="decremented",
                        updated_products=len(requested),
                        processed_at=datetime.now(timezone.utc),
                    )
                )
                session.flush()
                return StockDecrementResult(success=True, order_id=order_id, updated_products=len(requested))
        except IntegrityError:
            # a concurrent attempt committed the marker first
            return StockDecrementResult(success=True, order_id=order_id, already_processed=True)

    async def restore_stock_for_order(self, order_id: str) -> StockDecrementResult:
        if not order_id:
            return StockDecrementResult(success=False, error="order id is required")
        with self._scope() as session:
            marker = session.get(StockDecrementModel, order_id)
            if marker is None:
                return StockDecrementResult(success=False, order_id=order_id, error="stock was never decremented for order")
            if marker.status == "restored":
                return StockDecrementResult(success=True, order_id=order_id, already_processed=True)

            items = session.scalars(select(OrderItemModel).where(OrderItemModel.order_id == order_id)).all()
            requested = _sum_by_product(StockLine(item.product_id, item.quantity) for item in items)
            for row in session.scalars(select(ProductModel).where(ProductModel.id.in_(list(requested)))).all():
                row.stock_quantity += requested[row.id]
            marker.status = "restored"
            marker.restored_at = datetime.now(timezone.utc)

            order = session.get(OrderModel, order_id)
            if order is not None:
                order.status = "cancelled"
            return StockDecrementResult(success=True, order_id=order_id, updated_products=len(requested))
