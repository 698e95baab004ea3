from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from storefront.core.errors import NotFoundError
from storefront.core.security import Customer, get_current_user
from storefront.orders.repository import OrderRecord
from storefront.services import CheckoutServices, get_services

router = APIRouter(tags=["orders"])


async def owned_order(order_id: str, customer: Customer, services: CheckoutServices) -> OrderRecord:
    order = await services.orders.get_order(order_id)
    if order is None:
        raise NotFoundError(f"order not found: {order_id}")
    if customer.role != "admin" and str(order.user_id) != str(customer.user_id):
        raise HTTPException(status_code=403, detail="forbidden")
    return order


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    order = await owned_order(order_id, customer, services)
    return order.to_dict()


@router.post("/orders/{order_id}/decrement-stock")
async def decrement_stock(
    order_id: str,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    await owned_order(order_id, customer, services)
    result = await services.stock.decrement_stock_for_order(order_id)
    if not result.success:
        raise HTTPException(status_code=409, detail=result.error or "failed to decrement stock")
    return asdict(result)


@router.post("/orders/{order_id}/restore-stock")
async def restore_stock(
    order_id: str,
    customer: Customer = Depends(get_current_user),
    services: CheckoutServices = Depends(get_services),
):
    await owned_order(order_id, customer, services)
    result = await services.stock.restore_stock_for_order(order_id)
    if not result.success:
        raise HTTPException(status_code=409, detail=result.error or "failed to restore stock")
    return asdict(result)
