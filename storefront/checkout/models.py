from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DraftSource = Literal["order", "product", "cart"]


class ShippingRate(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    service_code: str
    service_name: str | None = None
    cost: int = Field(ge=0)
    etd: str | None = None
    currency: str | None = None


class DraftLine(BaseModel):
    """One priced line; ``unit_price`` is frozen when the draft is assembled."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: str = ""
    unit_price: int = Field(ge=0)
    quantity: int = Field(gt=0)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


class OrderDraft(BaseModel):
    source: DraftSource
    lines: list[DraftLine]
    order_id: str | None = None
    shipping_rate: ShippingRate | None = None
    payment_method: str | None = None

    @property
    def subtotal(self) -> int:
        return sum(line.line_total for line in self.lines)

    @property
    def shipping_cost(self) -> int:
        return self.shipping_rate.cost if self.shipping_rate else 0

    @property
    def total(self) -> int:
        return self.subtotal + self.shipping_cost

    @property
    def product_ids(self) -> list[str]:
        return sorted({line.product_id for line in self.lines})

    def with_shipping(self, rate: ShippingRate | None) -> "OrderDraft":
        return self.model_copy(update={"shipping_rate": rate})

    def with_payment_method(self, method: str) -> "OrderDraft":
        return self.model_copy(update={"payment_method": method})


class CustomerProfile(BaseModel):
    user_id: str | None = None
    full_name: str | None = None
    phone: str | None = None
    address: str | None = None
    postal_code: str | None = None
