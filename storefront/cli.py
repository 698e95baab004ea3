from __future__ import annotations

import argparse
import asyncio
import json

from storefront.cart.local_storage import LocalCartStorage, reset_local_cart
from storefront.core.config import get_settings
from storefront.core.errors import CorruptLocalStateError
from storefront.core.logging import configure_logging
from storefront.demo import seed_catalog
from storefront.inventory.stock_service import SqlStockService, StockLine
from storefront.persistence.pg import init_db, session_scope


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storefront checkout CLI")
    top = parser.add_subparsers(dest="command", required=True)

    db = top.add_parser("db", help="Database operations")
    db_sub = db.add_subparsers(dest="db_command", required=True)
    db_sub.add_parser("init", help="Create all tables")

    catalog = top.add_parser("catalog", help="Catalog operations")
    catalog_sub = catalog.add_subparsers(dest="catalog_command", required=True)
    seed = catalog_sub.add_parser("seed", help="Insert demo products and profile")
    seed.add_argument("--reset-stock", action="store_true", help="Restore demo stock levels on existing rows")

    cart = top.add_parser("cart", help="Local cart operations")
    cart_sub = cart.add_subparsers(dest="cart_command", required=True)
    cart_sub.add_parser("show", help="Print the locally stored cart")
    cart_sub.add_parser("reset", help="Delete the locally stored cart")

    stock = top.add_parser("stock", help="Stock operations")
    stock_sub = stock.add_subparsers(dest="stock_command", required=True)
    validate = stock_sub.add_parser("validate", help="Check stock for product=qty pairs")
    validate.add_argument("items", nargs="+", help="product_id=quantity")

    return parser


def _parse_items(values: list[str]) -> list[StockLine]:
    lines = []
    for value in values:
        product_id, sep, qty = value.partition("=")
        if not sep or not product_id:
            raise ValueError(f"expected product_id=quantity, got {value!r}")
        lines.append(StockLine(product_id=product_id, quantity=int(qty)))
    return lines


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cart_show() -> int:
    storage = LocalCartStorage(get_settings().local_cart_path)
    try:
        snapshot = storage.read()
    except CorruptLocalStateError as exc:
        _print({"path": str(storage.path), "error": str(exc), "hint": "run `cart reset`"})
        return 1
    _print({"path": str(storage.path), "items": snapshot, "total_items": sum(snapshot.values())})
    return 0


def _stock_validate(args: argparse.Namespace) -> int:
    init_db()
    result = asyncio.run(SqlStockService().validate_cart_stock(_parse_items(args.items)))
    _print(
        {
            "valid": result.valid,
            "reason": result.reason,
            "valid_items": result.valid_items,
            "errors": result.errors,
        }
    )
    return 0 if result.valid else 1


def main() -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "db" and args.db_command == "init":
        init_db()
        _print({"status": "ok"})
        return 0
    if args.command == "catalog" and args.catalog_command == "seed":
        init_db()
        with session_scope() as session:
            _print(seed_catalog(session, reset_stock=args.reset_stock))
        return 0
    if args.command == "cart" and args.cart_command == "show":
        return _cart_show()
    if args.command == "cart" and args.cart_command == "reset":
        reset_local_cart()
        _print({"status": "ok"})
        return 0
    if args.command == "stock" and args.stock_command == "validate":
        return _stock_validate(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
