from storefront.shipping.providers import (
    HttpShippingRateProvider,
    ShippingProviderError,
    ShippingRateProvider,
    StaticShippingRateProvider,
    build_shipping_provider,
)
from storefront.shipping.resolver import (
    LIMITED_OPTIONS_NOTICE,
    SYNTHETIC_RATES,
    TEMPORARY_RATES_NOTICE,
    CancellationToken,
    ShippingQuote,
    ShippingRateResolver,
    filter_rates,
    normalize_service_tokens,
)

__all__ = [
    "LIMITED_OPTIONS_NOTICE",
    "SYNTHETIC_RATES",
    "TEMPORARY_RATES_NOTICE",
    "CancellationToken",
    "HttpShippingRateProvider",
    "ShippingProviderError",
    "ShippingQuote",
    "ShippingRateProvider",
    "ShippingRateResolver",
    "StaticShippingRateProvider",
    "build_shipping_provider",
    "filter_rates",
    "normalize_service_tokens",
]
