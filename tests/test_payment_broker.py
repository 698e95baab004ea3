from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

import storefront.persistence.pg as pg
from storefront.catalog.products import SqlProductCatalog
from storefront.checkout import CheckoutAssembler, CustomerProfile, DraftLine, OrderDraft, ShippingRate
from storefront.core.errors import InsufficientStockError, PersistenceError
from storefront.inventory import SqlStockService, StockDecrementResult, StockGuard, StockValidationResult
from storefront.orders import SqlOrderRepository
from storefront.orders.repository import OrderRecord
from storefront.payments import PaymentSessionBroker, SimulatedPaymentProvider
from storefront.payments.broker import SESSION_CREATED_MESSAGE
from storefront.persistence.models import OrderItemModel, OrderModel, ProductModel

CUSTOMER = CustomerProfile(user_id="user-001", full_name="Siti", phone="0812", address="Jl. Mawar 1", postal_code="12190")
RATE = ShippingRate(provider="jne", service_code="REG", service_name="Reguler", cost=5000, etd="2-3 hari")


class CountingStockService(SqlStockService):
    def __init__(self, decrement_result: StockDecrementResult | None = None):
        super().__init__()
        self.decrement_calls: list[str] = []
        self.decrement_result = decrement_result

    async def decrement_stock_for_order(self, order_id: str) -> StockDecrementResult:
        self.decrement_calls.append(order_id)
        if self.decrement_result is not None:
            return self.decrement_result
        return await super().decrement_stock_for_order(order_id)


class FailingPaymentProvider:
    provider_name = "failing"

    def __init__(self):
        self.calls = 0

    async def create_session(self, request):
        self.calls += 1
        raise RuntimeError("payment gateway timeout")


def _counts() -> tuple[int, int]:
    with pg.session_scope() as s:
        orders = s.scalar(select(func.count()).select_from(OrderModel))
        items = s.scalar(select(func.count()).select_from(OrderItemModel))
    return orders, items


def _broker(stock=None, payments=None, orders=None):
    stock = stock or CountingStockService()
    payments = payments or SimulatedPaymentProvider()
    orders = orders or SqlOrderRepository()
    broker = PaymentSessionBroker(orders, StockGuard(stock), payments, return_url="https://shop.example/return")
    return broker, stock, payments


def _draft(cart=None, order_id=None):
    assembler = CheckoutAssembler(SqlProductCatalog(), SqlOrderRepository())
    return asyncio.run(assembler.assemble(order_id=order_id, cart=cart))


def test_cart_checkout_persists_order_with_shipping_total(add_product):
    add_product("A", 10000, stock=5)
    broker, stock, payments = _broker()
    draft = _draft(cart={"A": 2})

    result = asyncio.run(broker.submit(draft, CUSTOMER, payment_method="QRIS", shipping_rate=RATE))

    assert draft.subtotal == 20000
    assert result.total_amount == 25000
    assert result.redirect_url is not None
    with pg.session_scope() as s:
        order = s.get(OrderModel, result.order_id)
        assert order.total_amount == 25000
        assert order.shipping_courier == "jne"
        assert order.customer_name == "Siti"
        assert [(item.product_id, item.quantity, item.unit_price) for item in order.items] == [("A", 2, 10000)]
        assert s.get(ProductModel, "A").stock_quantity == 3
    assert stock.decrement_calls == [result.order_id]
    assert payments.requests[0].order_id == result.order_id
    assert payments.requests[0].test is False


def test_insufficient_stock_blocks_before_any_write(add_product):
    add_product("A", 10000, stock=1)
    broker, stock, payments = _broker()
    draft = _draft(cart={"A": 2})

    with pytest.raises(InsufficientStockError):
        asyncio.run(broker.submit(draft, CUSTOMER, payment_method="QRIS", shipping_rate=RATE))

    assert _counts() == (0, 0)
    assert stock.decrement_calls == []
    assert payments.requests == []


def test_dry_run_sends_inline_order_and_writes_nothing(add_product):
    add_product("A", 10000, stock=5)
    broker, stock, payments = _broker()
    draft = _draft(cart={"A": 2})

    result = asyncio.run(broker.submit(draft, CUSTOMER, payment_method="EWALLET", shipping_rate=RATE, dry_run=True))

    assert result.dry_run is True
    assert result.order_id is None
    assert _counts() == (0, 0)
    assert stock.decrement_calls == []
    request = payments.requests[0]
    assert request.test is True
    assert request.order_id is None
    assert request.order["items"] == [{"product_id": "A", "product_name": "Product A", "quantity": 2, "unit_price": 10000}]


def test_dry_run_writes_nothing_even_when_provider_fails(add_product):
    add_product("A", 10000, stock=5)
    payments = FailingPaymentProvider()
    broker, _, _ = _broker(payments=payments)

    with pytest.raises(RuntimeError):
        asyncio.run(broker.submit(_draft(cart={"A": 1}), CUSTOMER, dry_run=True))

    assert payments.calls == 1
    assert _counts() == (0, 0)


def test_decrement_failure_does_not_roll_back_order(add_product):
    add_product("A", 10000, stock=5)
    stock = CountingStockService(StockDecrementResult(success=False, error="rpc error"))
    broker, _, _ = _broker(stock=stock)

    result = asyncio.run(broker.submit(_draft(cart={"A": 1}), CUSTOMER))

    assert result.stock_decrement.success is False
    assert _counts() == (1, 1)
    assert result.session.session_id is not None


def test_resumed_order_is_not_recreated(add_product):
    add_product("A", 10000, stock=5)
    first, stock, _ = _broker()
    created = asyncio.run(first.submit(_draft(cart={"A": 1}), CUSTOMER))

    resumed_draft = _draft(order_id=created.order_id)
    result = asyncio.run(first.submit(resumed_draft, CUSTOMER, shipping_rate=RATE))

    assert result.resumed is True
    assert result.order_id == created.order_id
    assert result.total_amount == 15000
    assert _counts() == (1, 1)
    assert result.stock_decrement.already_processed is True
    with pg.session_scope() as s:
        assert s.get(ProductModel, "A").stock_quantity == 4


def test_order_without_items_is_deleted_and_reported():
    class ItemlessOrders:
        def __init__(self):
            self.deleted: list[str] = []

        async def create_order_with_items(self, order, lines):
            return OrderRecord(id="ord-x", status="pending", total_amount=order.total_amount, created_at=datetime.now(timezone.utc))

        async def delete_order(self, order_id):
            self.deleted.append(order_id)

    class AlwaysValid(CountingStockService):
        async def validate_cart_stock(self, lines):
            return StockValidationResult(valid=True)

    orders = ItemlessOrders()
    broker, stock, payments = _broker(stock=AlwaysValid(), orders=orders)
    draft = OrderDraft(source="cart", lines=[DraftLine(product_id="A", unit_price=1000, quantity=1)])

    with pytest.raises(PersistenceError):
        asyncio.run(broker.submit(draft, CUSTOMER))

    assert orders.deleted == ["ord-x"]
    assert stock.decrement_calls == []
    assert payments.requests == []


def test_session_without_redirect_reports_confirmation(add_product):
    add_product("A", 10000, stock=5)
    broker, _, _ = _broker(payments=SimulatedPaymentProvider(redirect=False))

    result = asyncio.run(broker.submit(_draft(cart={"A": 1}), CUSTOMER))

    assert result.redirect_url is None
    assert result.message == SESSION_CREATED_MESSAGE


def test_resumed_dry_run_leaves_order_and_stock_untouched(add_product):
    add_product("A", 10000, stock=5)
    skipped = CountingStockService(StockDecrementResult(success=False, error="rpc error"))
    first, _, _ = _broker(stock=skipped)
    order_id = asyncio.run(first.submit(_draft(cart={"A": 1}), CUSTOMER)).order_id

    broker, stock, payments = _broker()
    result = asyncio.run(broker.submit(_draft(order_id=order_id), CUSTOMER, shipping_rate=RATE, dry_run=True))

    assert result.dry_run is True
    assert result.resumed is True
    assert result.order_id == order_id
    assert stock.decrement_calls == []
    request = payments.requests[0]
    assert request.test is True
    assert request.order_id is None
    assert request.order["id"] == order_id
    assert request.order["shipping_cost"] == 5000
    with pg.session_scope() as s:
        order = s.get(OrderModel, order_id)
        assert order.total_amount == 10000
        assert order.shipping_courier is None
        assert s.get(ProductModel, "A").stock_quantity == 5
    assert _counts() == (1, 1)


def test_resume_after_decrement_at_exact_stock_still_pays(add_product):
    add_product("A", 10000, stock=2)
    failing, _, _ = _broker(payments=FailingPaymentProvider())
    with pytest.raises(RuntimeError):
        asyncio.run(failing.submit(_draft(cart={"A": 2}), CUSTOMER))
    with pg.session_scope() as s:
        order_id = s.scalar(select(OrderModel.id))
        assert s.get(ProductModel, "A").stock_quantity == 0

    broker, stock, payments = _broker()
    result = asyncio.run(broker.submit(_draft(order_id=order_id), CUSTOMER, shipping_rate=RATE))

    assert result.order_id == order_id
    assert result.total_amount == 25000
    assert result.stock_decrement.already_processed is True
    assert payments.requests[0].order_id == order_id
    with pg.session_scope() as s:
        assert s.get(ProductModel, "A").stock_quantity == 0
    assert _counts() == (1, 1)
