from __future__ import annotations

import logging
from typing import Mapping

from storefront.cart.local_storage import parse_cart_blob
from storefront.catalog.pricing import compute_price_after_discount
from storefront.catalog.products import Product, ProductCatalog
from storefront.checkout.models import DraftLine, OrderDraft
from storefront.core.errors import EmptyCartError, NotFoundError, ValidationError
from storefront.orders.repository import OrderRepository

logger = logging.getLogger(__name__)


def price_line(product: Product, quantity: int) -> DraftLine:
    price = compute_price_after_discount(product.price, discount_percent=product.discount_percent or 0)
    return DraftLine(
        product_id=product.id,
        product_name=product.name,
        unit_price=price.discounted,
        quantity=quantity,
    )


class CheckoutAssembler:
    """Builds an order draft from exactly one source.

    Priority is a resumed order, then a single "buy now" product, then the
    cart. Prices are resolved once here and frozen into the draft. Nothing is
    written.
    """

    def __init__(self, catalog: ProductCatalog, orders: OrderRepository):
        self.catalog = catalog
        self.orders = orders

    async def assemble(
        self,
        *,
        order_id: str | None = None,
        product_id: str | None = None,
        quantity: int = 1,
        cart: Mapping[str, int] | None = None,
        cart_blob: str | None = None,
    ) -> OrderDraft:
        if order_id:
            return await self.from_order(order_id)
        if product_id:
            return await self.from_product(product_id, quantity)
        if cart is not None:
            return await self.from_cart(cart)
        if cart_blob is not None:
            return await self.from_cart(parse_cart_blob(cart_blob))
        raise ValidationError("no checkout source supplied; return to cart")

    async def from_order(self, order_id: str) -> OrderDraft:
        order = await self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError(f"order not found: {order_id}")
        if order.status != "pending":
            raise ValidationError(f"order {order_id} is not awaiting payment (status={order.status})")
        if not order.items:
            raise EmptyCartError(f"order {order_id} has no items")
        lines = [
            DraftLine(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in order.items
        ]
        return OrderDraft(source="order", order_id=order.id, lines=lines)

    async def from_product(self, product_id: str, quantity: int = 1) -> OrderDraft:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError(f"product not found: {product_id}")
        return OrderDraft(source="product", lines=[price_line(product, max(1, int(quantity)))])

    async def from_cart(self, cart: Mapping[str, int]) -> OrderDraft:
        entries = [(pid, int(qty)) for pid, qty in cart.items() if pid and int(qty) > 0]
        if not entries:
            raise EmptyCartError("cart is empty")

        products = {product.id: product for product in await self.catalog.get_products(pid for pid, _ in entries)}
        lines: list[DraftLine] = []
        for pid, qty in entries:
            product = products.get(pid)
            if product is None:
                logger.info("dropping cart line for unavailable product=%s", pid)
                continue
            lines.append(price_line(product, qty))

        if not lines:
            raise EmptyCartError("none of the cart products are available")
        return OrderDraft(source="cart", lines=lines)
