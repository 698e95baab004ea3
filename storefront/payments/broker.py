from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from storefront.checkout.models import CustomerProfile, OrderDraft, ShippingRate
from storefront.core.errors import PersistenceError, ValidationError
from storefront.inventory.stock_guard import StockGuard
from storefront.inventory.stock_service import StockDecrementResult
from storefront.orders.repository import NewOrder, OrderRepository
from storefront.payments.providers import PaymentProvider, PaymentSession, PaymentSessionRequest

logger = logging.getLogger(__name__)

SESSION_CREATED_MESSAGE = "payment session created"
TEST_SESSION_CREATED_MESSAGE = "test payment session created; nothing was saved"


@dataclass
class CheckoutResult:
    session: PaymentSession
    total_amount: int
    order_id: str | None = None
    dry_run: bool = False
    resumed: bool = False
    stock_decrement: StockDecrementResult | None = None

    @property
    def redirect_url(self) -> str | None:
        return self.session.redirect_url

    @property
    def message(self) -> str | None:
        """Confirmation shown when the provider did not return a redirect."""
        if self.redirect_url:
            return None
        return TEST_SESSION_CREATED_MESSAGE if self.dry_run else SESSION_CREATED_MESSAGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "total_amount": self.total_amount,
            "dry_run": self.dry_run,
            "resumed": self.resumed,
            "redirect_url": self.redirect_url,
            "message": self.message,
            "session": self.session.model_dump(),
            "stock_decremented": bool(self.stock_decrement and self.stock_decrement.success),
        }


class PaymentSessionBroker:
    """Turns a finalized draft into a persisted order plus a payment session.

    Sequence for a real checkout: re-validate stock, create the order and its
    items (or reuse a resumed order), attach the shipping selection, decrement
    stock once, then ask the provider for a session. A dry run, resumed or
    not, skips every write and sends the order inline with ``test=True``.

    Two concurrent submits of the same draft are not deduplicated and can
    create two orders.
    """

    def __init__(
        self,
        orders: OrderRepository,
        stock_guard: StockGuard,
        payments: PaymentProvider,
        return_url: str | None = None,
    ):
        self.orders = orders
        self.stock_guard = stock_guard
        self.payments = payments
        self.return_url = return_url

    async def submit(
        self,
        draft: OrderDraft,
        customer: CustomerProfile,
        payment_method: str | None = None,
        shipping_rate: ShippingRate | None = None,
        payment_channel: str | None = None,
        dry_run: bool = False,
    ) -> CheckoutResult:
        if not draft.lines:
            raise ValidationError("order draft has no lines")
        rate = shipping_rate or draft.shipping_rate
        method = payment_method or draft.payment_method
        if dry_run:
            return await self._submit_dry_run(draft, customer, rate, method, payment_channel)

        resumed = bool(draft.order_id)
        await self.stock_guard.ensure_available(draft.lines, order_id=draft.order_id)

        if resumed:
            order_id = draft.order_id
        else:
            order_id = await self._create_order(draft, customer)

        total = draft.subtotal
        if rate is not None:
            total = draft.subtotal + rate.cost
            await self.orders.update_shipping(order_id, rate.provider, total)

        decrement = await self.stock_guard.decrement_stock_for_order(order_id)

        session = await self.payments.create_session(
            PaymentSessionRequest(
                order_id=order_id,
                return_url=self.return_url,
                payment_method=method,
                payment_channel=payment_channel,
            )
        )
        logger.info(
            "payment session created order=%s total=%s provider=%s redirect=%s",
            order_id,
            total,
            session.provider,
            bool(session.redirect_url),
        )
        return CheckoutResult(
            session=session,
            total_amount=total,
            order_id=order_id,
            resumed=resumed,
            stock_decrement=decrement,
        )

    async def _create_order(self, draft: OrderDraft, customer: CustomerProfile) -> str:
        record = await self.orders.create_order_with_items(
            NewOrder(
                total_amount=draft.subtotal,
                user_id=customer.user_id,
                customer_name=customer.full_name or "",
                customer_phone=customer.phone or "",
                customer_address=customer.address or "",
            ),
            list(draft.lines),
        )
        if not record.items:
            # an order must never exist without items
            logger.error("order %s stored without items, deleting it", record.id)
            await self.orders.delete_order(record.id)
            raise PersistenceError("failed to create order items")
        return record.id

    async def _submit_dry_run(
        self,
        draft: OrderDraft,
        customer: CustomerProfile,
        rate: ShippingRate | None,
        method: str | None,
        payment_channel: str | None,
    ) -> CheckoutResult:
        inline_order: dict[str, Any] = {
            "total_amount": draft.subtotal,
            "status": "pending",
            "customer_name": customer.full_name or "",
            "customer_phone": customer.phone or "",
            "customer_address": customer.address or "",
            "user_id": customer.user_id,
            "items": [
                {
                    "product_id": line.product_id,
                    "product_name": line.product_name,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                }
                for line in draft.lines
            ],
        }
        if draft.order_id:
            inline_order["id"] = draft.order_id
        if rate is not None:
            inline_order["shipping_courier"] = rate.provider
            inline_order["shipping_cost"] = rate.cost

        session = await self.payments.create_session(
            PaymentSessionRequest(
                order=inline_order,
                return_url=self.return_url,
                payment_method=method,
                payment_channel=payment_channel,
                test=True,
            )
        )
        logger.info("test payment session created provider=%s", session.provider)
        return CheckoutResult(
            session=session,
            total_amount=draft.subtotal,
            order_id=draft.order_id,
            dry_run=True,
            resumed=bool(draft.order_id),
        )
