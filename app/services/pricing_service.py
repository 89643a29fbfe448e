"""Recompute what an order should cost from current source records.

All comparisons are in integer dirams with a one-diram tolerance.
"""
import logging
from decimal import Decimal

from app.core.errors import PriceMismatch, PriceValidationError
from app.core.money import amounts_match, from_minor, to_minor
from app.models.order import OrderKind
from app.services.order_store import OrderBundle

logger = logging.getLogger(__name__)

GUIDE_HIRE_PAYABLE = {"confirmed", "approved"}
TRANSFER_PAYABLE = {"pending", "quoted", "approved", "confirmed"}


def expected_guide_hire(bundle: OrderBundle) -> int:
    req, guide = bundle.guide_hire_request, bundle.guide
    if not req or not guide:
        raise PriceValidationError("Guide hire request or guide no longer exists")
    if req.status not in GUIDE_HIRE_PAYABLE:
        raise PriceValidationError(f"Guide hire request is {req.status}; it must be approved before payment")
    if guide.price_per_day is None or Decimal(guide.price_per_day) <= 0:
        raise PriceValidationError("Guide has no daily rate set")
    days = int(req.number_of_days or 0)
    if days <= 0:
        raise PriceValidationError("Guide hire request has no days selected")
    return to_minor(guide.price_per_day) * days


def expected_transfer(bundle: OrderBundle) -> int:
    req = bundle.transfer_request
    if not req:
        raise PriceValidationError("Transfer request no longer exists")
    if req.status not in TRANSFER_PAYABLE:
        raise PriceValidationError(f"Transfer request is {req.status} and cannot be paid")
    price = req.final_price if req.final_price is not None else req.estimated_price
    if price is None or Decimal(price) <= 0:
        raise PriceValidationError("Transfer request has no price yet")
    return to_minor(price)


def expected_custom_tour(bundle: OrderBundle) -> int:
    cto = bundle.custom_tour_order
    if not cto:
        raise PriceValidationError("Custom tour order no longer exists")
    frozen = cto.components or []
    if not frozen:
        raise PriceValidationError("Custom tour order has no components")
    total = 0
    for item in frozen:
        try:
            cid = int(item["id"])
            qty = int(item.get("quantity") or 1)
        except (KeyError, TypeError, ValueError, AttributeError):
            raise PriceValidationError(f"Custom tour order has a malformed component entry: {item!r}") from None
        comp = bundle.components.get(cid)
        if comp is None:
            raise PriceValidationError(f"Component {cid} is no longer available")
        if qty <= 0:
            raise PriceValidationError(f"Component {cid} has an invalid quantity")
        total += to_minor(comp.price) * qty
    return total


_EXPECTED = {
    OrderKind.GUIDE_HIRE: expected_guide_hire,
    OrderKind.TRANSFER: expected_transfer,
    OrderKind.CUSTOM_TOUR: expected_custom_tour,
}


def expected_amount(bundle: OrderBundle) -> int | None:
    """Expected charge in dirams, or None when the order kind has no source to check against."""
    fn = _EXPECTED.get(bundle.order.kind)
    return fn(bundle) if fn else None


def validate_order_price(bundle: OrderBundle) -> int:
    """Raise PriceMismatch/PriceValidationError unless the order snapshot is still chargeable.

    Returns the amount to charge in dirams.
    """
    order = bundle.order
    current = to_minor(order.total_amount)
    expected = expected_amount(bundle)
    if expected is None:
        return current
    if not amounts_match(expected, current):
        logger.warning(
            "Price mismatch on %s: expected %s, order has %s",
            order.order_number, from_minor(expected), from_minor(current),
        )
        raise PriceMismatch(
            "Order amount no longer matches current pricing",
            expected=from_minor(expected),
            current=from_minor(current),
        )
    return current
