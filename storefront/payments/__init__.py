from storefront.payments.broker import CheckoutResult, PaymentSessionBroker
from storefront.payments.providers import (
    HttpPaymentProvider,
    PaymentProvider,
    PaymentProviderError,
    PaymentSession,
    PaymentSessionRequest,
    SimulatedPaymentProvider,
    build_payment_provider,
    normalize_payment_method,
    parse_dry_run_flag,
)

__all__ = [
    "CheckoutResult",
    "HttpPaymentProvider",
    "PaymentProvider",
    "PaymentProviderError",
    "PaymentSession",
    "PaymentSessionBroker",
    "PaymentSessionRequest",
    "SimulatedPaymentProvider",
    "build_payment_provider",
    "normalize_payment_method",
    "parse_dry_run_flag",
]
