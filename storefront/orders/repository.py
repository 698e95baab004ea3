from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Protocol

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from storefront.core.errors import PersistenceError
from storefront.persistence import pg
from storefront.persistence.models import ORDER_STATUSES, OrderItemModel, OrderModel

if TYPE_CHECKING:
    from storefront.checkout.models import DraftLine

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass
class OrderItemRecord:
    order_id: str
    product_id: str
    quantity: int
    unit_price: int
    product_name: str = ""


@dataclass
class OrderRecord:
    id: str
    status: str
    total_amount: int
    created_at: datetime
    user_id: str | None = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    shipping_courier: str | None = None
    items: list[OrderItemRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "total_amount": self.total_amount,
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "shipping_courier": self.shipping_courier,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
            "items": [
                {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                }
                for item in self.items
            ],
        }


@dataclass
class NewOrder:
    total_amount: int
    user_id: str | None = None
    customer_name: str = ""
    customer_phone: str = ""
    customer_address: str = ""
    status: str = "pending"


def order_record_from_row(row: OrderModel) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        status=row.status,
        total_amount=int(row.total_amount),
        created_at=row.created_at,
        user_id=row.user_id,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        customer_address=row.customer_address,
        shipping_courier=row.shipping_courier,
        items=[
            OrderItemRecord(
                order_id=item.order_id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=int(item.unit_price),
                product_name=item.product_name,
            )
            for item in row.items
        ],
    )


class OrderRepository(Protocol):
    async def get_order(self, order_id: str) -> OrderRecord | None:
        ...

    async def create_order_with_items(self, order: NewOrder, lines: list[DraftLine]) -> OrderRecord:
        ...

    async def delete_order(self, order_id: str) -> None:
        ...

    async def update_shipping(self, order_id: str, shipping_courier: str, total_amount: int) -> None:
        ...


class SqlOrderRepository:
    """Orders and their items, written in one transaction."""

    def __init__(self, session_factory: SessionFactory | None = None):
        self._session_factory = session_factory

    def _scope(self) -> AbstractContextManager[Session]:
        factory = self._session_factory or pg.session_scope
        return factory()

    async def get_order(self, order_id: str) -> OrderRecord | None:
        with self._scope() as session:
            row = session.get(OrderModel, order_id, options=[selectinload(OrderModel.items)])
            return order_record_from_row(row) if row is not None else None

    async def create_order_with_items(self, order: NewOrder, lines: list[DraftLine]) -> OrderRecord:
        if order.status not in ORDER_STATUSES:
            raise PersistenceError(f"unsupported order status: {order.status}")
        if not lines:
            raise PersistenceError("an order needs at least one item")
        try:
            with self._scope() as session:
                row = OrderModel(
                    user_id=order.user_id,
                    status=order.status,
                    total_amount=order.total_amount,
                    customer_name=order.customer_name,
                    customer_phone=order.customer_phone,
                    customer_address=order.customer_address,
                    created_at=datetime.now(timezone.utc),
                )
                row.items = [
                    OrderItemModel(
                        product_id=line.product_id,
                        product_name=line.product_name,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                    )
                    for line in lines
                ]
                session.add(row)
                session.flush()
                return order_record_from_row(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to create order: {exc}") from exc

    async def delete_order(self, order_id: str) -> None:
        with self._scope() as session:
            session.execute(delete(OrderItemModel).where(OrderItemModel.order_id == order_id))
            session.execute(delete(OrderModel).where(OrderModel.id == order_id))

    async def update_shipping(self, order_id: str, shipping_courier: str, total_amount: int) -> None:
        try:
            with self._scope() as session:
                row = session.get(OrderModel, order_id)
                if row is None:
                    raise PersistenceError(f"order not found: {order_id}")
                row.shipping_courier = shipping_courier
                row.total_amount = total_amount
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to update order shipping: {exc}") from exc
