from storefront.inventory.stock_guard import StockGuard
from storefront.inventory.stock_service import (
    SqlStockService,
    StockAvailabilityResult,
    StockDecrementResult,
    StockLine,
    StockService,
    StockValidationResult,
)

__all__ = [
    "SqlStockService",
    "StockAvailabilityResult",
    "StockDecrementResult",
    "StockGuard",
    "StockLine",
    "StockService",
    "StockValidationResult",
]
