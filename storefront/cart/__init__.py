from storefront.cart.local_storage import LocalCartStorage, parse_cart_blob, reset_local_cart
from storefront.cart.reconciler import CartReconciler, ReconcileOutcome, ShopperSession
from storefront.cart.remote import (
    CartRepository,
    HttpRemoteCartStore,
    RemoteCartStore,
    SqlRemoteCartStore,
    build_remote_cart,
)
from storefront.cart.store import CartLine, CartStore
from storefront.cart.sync import CartSyncer

__all__ = [
    "CartLine",
    "CartReconciler",
    "CartRepository",
    "CartStore",
    "CartSyncer",
    "HttpRemoteCartStore",
    "LocalCartStorage",
    "ReconcileOutcome",
    "RemoteCartStore",
    "ShopperSession",
    "SqlRemoteCartStore",
    "build_remote_cart",
    "parse_cart_blob",
    "reset_local_cart",
]
