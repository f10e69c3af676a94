# typed failures raised by the cart, catalog and ledger operations
from __future__ import annotations

from typing import Iterable, Tuple


class MarketplaceError(Exception):
    """
    Base for every failure surfaced to a caller.
    `code` is stable and safe to show or match on; `message` is human readable.
    """

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(MarketplaceError):
    code = "validation_error"

    def __init__(self, message: str, fields: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.fields: Tuple[str, ...] = tuple(fields)


class EmptyCart(MarketplaceError):
    code = "empty_cart"


class ProductNoLongerAvailable(MarketplaceError):
    code = "product_no_longer_available"

    def __init__(self, product_ids: Iterable[int]) -> None:
        self.product_ids: Tuple[int, ...] = tuple(sorted(product_ids))
        ids = ", ".join(str(pid) for pid in self.product_ids)
        super().__init__(
            f"Product(s) {ids} were sold to someone else. Refresh your cart and retry."
        )


class NotFound(MarketplaceError):
    code = "not_found"


class Unavailable(MarketplaceError):
    code = "unavailable"


class SelfPurchase(MarketplaceError):
    code = "self_purchase"


class Unauthorized(MarketplaceError):
    code = "unauthorized"


class Forbidden(MarketplaceError):
    code = "forbidden"


class PersistenceFailure(MarketplaceError):
    """Storage fault; the surrounding transaction has been rolled back."""

    code = "persistence_failure"
