from storefront.catalog.pricing import PriceResult, compute_price_after_discount
from storefront.catalog.products import Product, ProductCatalog, SqlProductCatalog

__all__ = [
    "PriceResult",
    "Product",
    "ProductCatalog",
    "SqlProductCatalog",
    "compute_price_after_discount",
]
