from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from storefront.api.routes_orders import owned_order
from storefront.checkout.models import CustomerProfile, OrderDraft, ShippingRate
from storefront.core.security import Customer, get_current_user
from storefront.payments.providers import parse_dry_run_flag
from storefront.services import CheckoutServices, get_services

router = APIRouter(tags=["checkout"])


class DraftRequest(BaseModel):
    order_id: str | None = None
    product_id: str | None = None
    quantity: int = Field(default=1, ge=1)
    cart: dict[str, int] | None = None
    cart_blob: str | None = None


class ShippingRatesRequest(DraftRequest):
    postal_code: str | None = None


class PayRequest(ShippingRatesRequest):
    payment_method: str | None = None
    payment_channel: str | None = None
    shipping_rate: ShippingRate | None = None
    dry_run: bool | str | None = None


def _draft_payload(draft: OrderDraft) -> dict:
    return {
        **draft.model_dump(),
        "subtotal": draft.subtotal,
        "shipping_cost": draft.shipping_cost,
        "total": draft.total,
    }


async def _assemble(req: DraftRequest, customer: Customer, services: CheckoutServices) -> OrderDraft:
    if req.order_id:
        await owned_order(req.order_id, customer, services)
    return await services.assembler.assemble(
        order_id=req.order_id,
        product_id=req.product_id,
        quantity=req.quantity,
        cart=req.cart,
        cart_blob=req.cart_blob,
    )


async def _profile_for(customer: Customer, services: CheckoutServices) -> CustomerProfile:
    profile = await services.profiles.get_profile(customer.user_id)
    return profile or CustomerProfile(user_id=customer.user_id)


@router.post("/checkout/draft")
async def create_draft(
    req: DraftRequest,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    draft = await _assemble(req, customer, services)
    return _draft_payload(draft)


@router.post("/checkout/shipping-rates")
async def shipping_rates(
    req: ShippingRatesRequest,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    draft = await _assemble(req, customer, services)
    profile = await _profile_for(customer, services)
    quote = await services.shipping.resolve(draft, profile=profile, postal_code=req.postal_code)
    return quote.to_dict()


@router.post("/checkout/pay")
async def pay(
    req: PayRequest,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    draft = await _assemble(req, customer, services)
    profile = await _profile_for(customer, services)
    rate = None
    if req.shipping_rate is not None:
        rate = await services.shipping.confirm(draft, req.shipping_rate, profile=profile, postal_code=req.postal_code)
    result = await services.broker.submit(
        draft,
        profile,
        payment_method=req.payment_method,
        shipping_rate=rate,
        payment_channel=req.payment_channel,
        dry_run=parse_dry_run_flag(req.dry_run),
    )
    return {"draft": _draft_payload(draft.with_shipping(rate)), **result.to_dict()}
