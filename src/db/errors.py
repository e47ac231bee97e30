"""Exceptions raised by the data layer.

The ``actions`` package turns these into user-facing results; nothing below
the action boundary catches them.
"""

from typing import Dict, Optional


class ShopError(Exception):
    """Base for all expected failures of a shop operation."""

    code = "error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(ShopError):
    code = "validation"

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class NotFoundError(ShopError):
    code = "not_found"


class ProductNotFound(NotFoundError):
    code = "product_not_found"

    def __init__(self, product_id: int):
        super().__init__(f"product {product_id} not found or unavailable", product_id=product_id)
        self.product_id = product_id


class ConflictError(ShopError):
    code = "conflict"


class InsufficientStock(ShopError):
    code = "insufficient_stock"

    def __init__(self, product_id: int, title: str, requested: int, available: int):
        super().__init__(
            f"insufficient stock for product {product_id}: requested {requested}, available {available}",
            product_id=product_id,
            title=title,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.title = title
        self.requested = requested
        self.available = available


class IllegalTransition(ShopError):
    code = "illegal_transition"

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            f"order {order_id} cannot move from {current} to {target}",
            order_id=order_id,
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class Unauthorized(ShopError):
    code = "unauthorized"
