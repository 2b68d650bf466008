"""
Domain errors raised by the service modules.

Each error knows the HTTP status it maps to; the handlers registered in
``main`` render them as ``{"message": ..., **extra}``.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400


class StockInsufficient(ValidationError):
    """Requested quantity exceeds what the catalog can supply.

    Carries ``availableStock`` (live stock) or ``maxAvailable`` (units that
    may still be added) in the response body.
    """

    def __init__(self, message: str, available_stock: Optional[int] = None,
                 max_available: Optional[int] = None, product_id: Optional[str] = None):
        extra: Dict[str, Any] = {}
        if product_id is not None:
            extra["productId"] = product_id
        if available_stock is not None:
            extra["availableStock"] = available_stock
        if max_available is not None:
            extra["maxAvailable"] = max_available
        super().__init__(message, **extra)


class NotFound(AppError):
    status_code = 404


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403
