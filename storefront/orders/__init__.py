from storefront.orders.repository import (
    NewOrder,
    OrderItemRecord,
    OrderRecord,
    OrderRepository,
    SqlOrderRepository,
)

__all__ = ["NewOrder", "OrderItemRecord", "OrderRecord", "OrderRepository", "SqlOrderRepository"]
