from __future__ import annotations

import logging
from typing import Iterable, Protocol

from storefront.core.errors import InsufficientStockError
from storefront.inventory.stock_service import (
    StockDecrementResult,
    StockLine,
    StockService,
    StockValidationResult,
)

logger = logging.getLogger(__name__)


class _QuantifiedLine(Protocol):
    product_id: str
    quantity: int


def to_stock_lines(lines: Iterable[_QuantifiedLine]) -> list[StockLine]:
    return [StockLine(product_id=line.product_id, quantity=int(line.quantity)) for line in lines]


class StockGuard:
    """Inventory sufficiency checks and best-effort stock decrement.

    Validation is all-or-nothing: one short line invalidates the whole cart.
    Decrement failures are reported, never raised, because the order already
    exists by the time stock is decremented.
    """

    def __init__(self, service: StockService):
        self.service = service

    async def validate_cart_stock(self, lines: Iterable[_QuantifiedLine]) -> StockValidationResult:
        stock_lines = to_stock_lines(lines)
        try:
            return await self.service.validate_cart_stock(stock_lines)
        except Exception as exc:
            logger.error("stock validation failed: %s", exc, exc_info=True)
            return StockValidationResult(valid=False, reason="system error during stock validation")

    async def is_reserved(self, order_id: str) -> bool:
        try:
            return await self.service.is_decremented(order_id)
        except Exception as exc:
            logger.error("stock reservation lookup failed for order=%s: %s", order_id, exc, exc_info=True)
            return False

    async def ensure_available(
        self,
        lines: Iterable[_QuantifiedLine],
        order_id: str | None = None,
    ) -> StockValidationResult:
        """Raise InsufficientStockError unless every line fits current stock.

        Units already taken out for ``order_id`` belong to that order, so a
        reserved order passes without being checked again.
        """
        if order_id and await self.is_reserved(order_id):
            logger.info("stock already reserved for order=%s; skipping validation", order_id)
            return StockValidationResult(valid=True)
        result = await self.validate_cart_stock(lines)
        if not result.valid:
            raise InsufficientStockError(result.reason or "insufficient stock", errors=result.errors)
        return result

    async def decrement_stock_for_order(self, order_id: str) -> StockDecrementResult:
        try:
            result = await self.service.decrement_stock_for_order(order_id)
        except Exception as exc:
            result = StockDecrementResult(success=False, order_id=order_id, error=str(exc) or type(exc).__name__)
        if not result.success:
            logger.warning("stock decrement failed for order=%s: %s", order_id, result.error)
        elif result.already_processed:
            logger.info("stock already decremented for order=%s", order_id)
        return result

    async def restore_stock_for_order(self, order_id: str) -> StockDecrementResult:
        result = await self.service.restore_stock_for_order(order_id)
        if not result.success:
            logger.warning("stock restore failed for order=%s: %s", order_id, result.error)
        return result
