# Overview: Business error taxonomy shared by services and routes.

from __future__ import annotations


class PosError(Exception):
    """
    Base class for expected business outcomes.

    Routes turn these into the JSON envelope using status_code; the message
    is user-facing, details is optional structured context.
    """
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(PosError):
    """Product or sale reference missing."""
    status_code = 404


class InsufficientStockError(PosError):
    status_code = 422

    def __init__(self, product_id: int, available: int, requested: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for: {label}. Available: {available}",
            details={
                "product_id": product_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InsufficientPaymentError(PosError):
    status_code = 422

    def __init__(self, total_cents: int, tendered_cents: int):
        super().__init__(
            "Amount tendered is less than total amount.",
            details={"total_amount_cents": total_cents, "amount_tendered_cents": tendered_cents},
        )


class InvalidStateError(PosError):
    """Operation not allowed in the record's current status."""
    status_code = 422


class TransactionFailure(PosError):
    """
    Unexpected persistence failure.

    Never carries internal detail: the cause goes to the event sink only.
    """
    status_code = 500
    generic_message = "Operation failed. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.generic_message)


class SaleFailed(TransactionFailure):
    generic_message = "Sale failed. Please try again."
