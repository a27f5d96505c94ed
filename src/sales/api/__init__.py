"""Sales domain API package."""

from sales.api.errors import register_sales_exception_handlers
from sales.api.routes import order_router

__all__ = ["order_router", "register_sales_exception_handlers"]
