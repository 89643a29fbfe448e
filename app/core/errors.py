"""Domain exceptions raised by the payment services.

Routes translate these into HTTP responses; services never raise HTTPException.
"""
from __future__ import annotations

from decimal import Decimal


class PaymentError(Exception):
    """Base class for payment-layer errors."""


class RecordNotFound(PaymentError):
    def __init__(self, what: str, ref):
        super().__init__(f"{what} not found: {ref}")
        self.ref = ref


class OrderNotFound(RecordNotFound):
    def __init__(self, ref):
        super().__init__("Order", ref)


class PriceValidationError(PaymentError):
    """The order snapshot cannot be charged against current source data."""


class PriceMismatch(PriceValidationError):
    def __init__(self, message: str, expected: Decimal, current: Decimal):
        super().__init__(message)
        self.expected = expected
        self.current = current


class InvalidPaymentState(PaymentError):
    def __init__(self, message: str, payment_status: str):
        super().__init__(message)
        self.payment_status = payment_status


class RefundNotAllowed(InvalidPaymentState):
    pass


class InvalidRefundAmount(PaymentError):
    pass


class SourceNotAllowed(PaymentError):
    """Callback arrived from an address outside the provider allow-list."""


class InvalidSignature(PaymentError):
    pass
