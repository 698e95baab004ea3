from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from storefront.persistence.models import ProductModel, ProfileModel

DEMO_CUSTOMER_ID = "dev-customer-001"

DEMO_PRODUCTS: list[dict[str, Any]] = [
    {
        "id": "prod-serum-001",
        "name": "Brightening Serum 30ml",
        "price": 125000,
        "discount_percent": 10,
        "stock_quantity": 40,
        "shipping_services": ["Reguler", "YES"],
    },
    {
        "id": "prod-toner-002",
        "name": "Hydrating Toner 100ml",
        "price": 89000,
        "discount_percent": None,
        "stock_quantity": 25,
        "shipping_services": "reguler, best",
    },
    {
        "id": "prod-cream-003",
        "name": "Night Cream 50g",
        "price": 150000,
        "discount_percent": 15.5,
        "stock_quantity": 3,
        "shipping_services": None,
    },
    {
        "id": "prod-mask-004",
        "name": "Clay Mask (discontinued)",
        "price": 60000,
        "discount_percent": None,
        "stock_quantity": 0,
        "is_active": False,
        "shipping_services": None,
    },
]


def seed_catalog(session: Session, reset_stock: bool = False) -> dict[str, Any]:
    """Insert the demo products and profile; existing rows are left alone unless ``reset_stock``."""
    created: list[str] = []
    for item in DEMO_PRODUCTS:
        row = session.get(ProductModel, item["id"])
        if row is None:
            session.add(ProductModel(**{"is_active": True, **item}))
            created.append(item["id"])
        elif reset_stock:
            row.stock_quantity = item["stock_quantity"]

    if session.get(ProfileModel, DEMO_CUSTOMER_ID) is None:
        session.add(
            ProfileModel(
                user_id=DEMO_CUSTOMER_ID,
                role="customer",
                full_name="Demo Customer",
                phone="+62 812 0000 0001",
                address="Jl. Contoh No. 1, Jakarta",
                postal_code="12190",
            )
        )
    session.flush()
    return {"products": len(DEMO_PRODUCTS), "created": created}
