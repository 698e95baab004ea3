from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from storefront.catalog.products import Product
from storefront.checkout import CheckoutAssembler
from storefront.core.errors import CorruptLocalStateError, EmptyCartError, NotFoundError, ValidationError
from storefront.orders.repository import OrderItemRecord, OrderRecord


class FakeCatalog:
    def __init__(self, products: list[Product]):
        self.products = {product.id: product for product in products}

    async def get_product(self, product_id: str) -> Product | None:
        return self.products.get(product_id)

    async def get_products(self, product_ids) -> list[Product]:
        return [self.products[pid] for pid in product_ids if pid in self.products]


class FakeOrders:
    def __init__(self, orders: list[OrderRecord] | None = None):
        self.orders = {order.id: order for order in orders or []}

    async def get_order(self, order_id: str) -> OrderRecord | None:
        return self.orders.get(order_id)


def _order(order_id: str = "ord-1", status: str = "pending", items: list[OrderItemRecord] | None = None) -> OrderRecord:
    return OrderRecord(
        id=order_id,
        status=status,
        total_amount=30000,
        created_at=datetime.now(timezone.utc),
        user_id="u1",
        items=items if items is not None else [
            OrderItemRecord(order_id=order_id, product_id="B", product_name="Balm", quantity=3, unit_price=10000)
        ],
    )


def _assembler(orders: list[OrderRecord] | None = None) -> CheckoutAssembler:
    catalog = FakeCatalog(
        [
            Product(id="A", name="Serum", price=10000),
            Product(id="B", name="Balm", price=20000, discount_percent=10),
        ]
    )
    return CheckoutAssembler(catalog, FakeOrders(orders))


def test_resumed_order_takes_priority_over_product_and_cart():
    assembler = _assembler([_order()])
    draft = asyncio.run(assembler.assemble(order_id="ord-1", product_id="A", cart={"A": 2}))

    assert draft.source == "order"
    assert draft.order_id == "ord-1"
    assert [(line.product_id, line.quantity, line.unit_price) for line in draft.lines] == [("B", 3, 10000)]


def test_product_takes_priority_over_cart_and_uses_discounted_price():
    draft = asyncio.run(_assembler().assemble(product_id="B", quantity=2, cart={"A": 5}))

    assert draft.source == "product"
    assert [(line.product_id, line.quantity, line.unit_price) for line in draft.lines] == [("B", 2, 18000)]
    assert draft.subtotal == 36000


def test_cart_draft_drops_unknown_products():
    draft = asyncio.run(_assembler().assemble(cart={"A": 2, "ghost": 1}))

    assert draft.source == "cart"
    assert draft.product_ids == ["A"]
    assert draft.subtotal == 20000


def test_cart_blob_is_parsed_when_no_cart_map_is_given():
    draft = asyncio.run(_assembler().assemble(cart_blob='[{"id": "A", "quantity": 1}]'))
    assert draft.subtotal == 10000


def test_prices_are_frozen_at_assembly():
    assembler = _assembler()
    draft = asyncio.run(assembler.assemble(cart={"A": 1}))
    assembler.catalog.products["A"] = Product(id="A", name="Serum", price=99999)

    assert draft.lines[0].unit_price == 10000


def test_missing_source_is_a_validation_error():
    with pytest.raises(ValidationError):
        asyncio.run(_assembler().assemble())


def test_empty_or_unresolvable_cart_raises_empty_cart():
    with pytest.raises(EmptyCartError):
        asyncio.run(_assembler().assemble(cart={}))
    with pytest.raises(EmptyCartError):
        asyncio.run(_assembler().assemble(cart={"ghost": 2}))


def test_corrupt_cart_blob_is_reported():
    with pytest.raises(CorruptLocalStateError):
        asyncio.run(_assembler().assemble(cart_blob="{oops"))


def test_missing_order_or_product_raises_not_found():
    with pytest.raises(NotFoundError):
        asyncio.run(_assembler().assemble(order_id="nope"))
    with pytest.raises(NotFoundError):
        asyncio.run(_assembler().assemble(product_id="nope"))


def test_only_pending_orders_with_items_can_be_resumed():
    with pytest.raises(ValidationError):
        asyncio.run(_assembler([_order(status="paid")]).assemble(order_id="ord-1"))
    with pytest.raises(EmptyCartError):
        asyncio.run(_assembler([_order(items=[])]).assemble(order_id="ord-1"))
