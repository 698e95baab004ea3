from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.cart.remote import CartRepository, items_to_snapshot, snapshot_to_items
from storefront.core.security import Customer, get_current_user, require_customer
from storefront.persistence.pg import get_session

router = APIRouter(tags=["cart"])


class CartItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=0)


class CartWriteRequest(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)

    def normalized(self) -> list[dict]:
        return snapshot_to_items(items_to_snapshot([item.model_dump() for item in self.items]))


@router.get("/cart")
def get_cart(
    customer: Customer = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"items": CartRepository(session).get_items(customer.user_id)}


@router.post("/cart")
def replace_cart(
    req: CartWriteRequest,
    customer: Customer = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_customer(customer)
    row = CartRepository(session).upsert(customer.user_id, req.normalized())
    return {"items": row.items}


@router.patch("/cart")
def merge_cart(
    req: CartWriteRequest,
    customer: Customer = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_customer(customer)
    row = CartRepository(session).merge(customer.user_id, req.normalized())
    return {"items": row.items}


@router.delete("/cart")
def delete_cart(
    product_id: str | None = Query(default=None),
    customer: Customer = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require_customer(customer)
    repo = CartRepository(session)
    if product_id:
        row = repo.remove_product(customer.user_id, product_id)
        return {"items": row.items}
    repo.delete(customer.user_id)
    return {"ok": True}
