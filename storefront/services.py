from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from storefront.cart.local_storage import LocalCartStorage
from storefront.cart.reconciler import CartReconciler, ShopperSession
from storefront.cart.remote import RemoteCartStore, build_remote_cart
from storefront.cart.store import CartStore
from storefront.cart.sync import CartSyncer
from storefront.catalog.products import ProductCatalog, SqlProductCatalog
from storefront.checkout.assembler import CheckoutAssembler
from storefront.checkout.profiles import SqlProfileRepository
from storefront.core.config import Settings, get_settings
from storefront.inventory.stock_guard import StockGuard
from storefront.inventory.stock_service import SqlStockService
from storefront.orders.repository import OrderRepository, SqlOrderRepository
from storefront.payments.broker import PaymentSessionBroker
from storefront.payments.providers import PaymentProvider, build_payment_provider
from storefront.shipping.providers import ShippingRateProvider, build_shipping_provider
from storefront.shipping.resolver import ShippingRateResolver


@dataclass
class CheckoutServices:
    catalog: ProductCatalog
    orders: OrderRepository
    profiles: SqlProfileRepository
    stock: SqlStockService
    stock_guard: StockGuard
    assembler: CheckoutAssembler
    shipping: ShippingRateResolver
    payments: PaymentProvider
    broker: PaymentSessionBroker


def build_services(
    settings: Settings | None = None,
    *,
    shipping_provider: ShippingRateProvider | None = None,
    payment_provider: PaymentProvider | None = None,
) -> CheckoutServices:
    cfg = settings or get_settings()
    catalog = SqlProductCatalog()
    orders = SqlOrderRepository()
    stock = SqlStockService()
    stock_guard = StockGuard(stock)
    payments = payment_provider or build_payment_provider(cfg)
    shipping = ShippingRateResolver(
        provider=shipping_provider or build_shipping_provider(cfg),
        catalog=catalog,
        weight_grams=cfg.default_parcel_weight_grams,
        profile_cache_path=cfg.local_profile_path,
        origin_postal=cfg.origin_postal_code,
    )
    return CheckoutServices(
        catalog=catalog,
        orders=orders,
        profiles=SqlProfileRepository(),
        stock=stock,
        stock_guard=stock_guard,
        assembler=CheckoutAssembler(catalog, orders),
        shipping=shipping,
        payments=payments,
        broker=PaymentSessionBroker(orders, stock_guard, payments, return_url=cfg.payment_return_url),
    )


@lru_cache(maxsize=1)
def get_services() -> CheckoutServices:
    return build_services()


def build_shopper_session(
    settings: Settings | None = None,
    *,
    remote: RemoteCartStore | None = None,
    access_token: str | None = None,
) -> tuple[ShopperSession, CartReconciler]:
    """Client-side cart wiring: local blob, debounced sync and reconciler."""
    cfg = settings or get_settings()
    remote = remote or build_remote_cart(cfg, access_token)
    syncer = CartSyncer(remote, debounce_seconds=cfg.cart_sync_debounce_seconds)
    cart = CartStore.load(LocalCartStorage(cfg.local_cart_path), syncer=syncer)
    return ShopperSession(cart=cart), CartReconciler(remote)
