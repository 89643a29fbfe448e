from decimal import Decimal

import pytest

from app.core.errors import PriceMismatch, PriceValidationError
from app.core.money import amounts_match, format_major, to_minor
from app.db.session import SessionLocal
from app.models.custom_tour_component import CustomTourComponent
from app.models.custom_tour_order import CustomTourOrder
from app.models.guide import Guide
from app.models.guide_hire_request import GuideHireRequest
from app.models.order import Order, OrderKind
from app.models.transfer_request import TransferRequest
from app.services.order_store import OrderBundle
from app.services.pricing_service import expected_amount, validate_order_price


def _order(kind, total):
    return Order(id=1, order_number="X-1", kind=kind, total_amount=Decimal(total))


def _guide_bundle(total="300.00", price_per_day="100.00", days=3, status="approved"):
    return OrderBundle(
        order=_order(OrderKind.GUIDE_HIRE, total),
        guide=Guide(id=1, name="g", price_per_day=Decimal(price_per_day) if price_per_day is not None else None),
        guide_hire_request=GuideHireRequest(id=1, guide_id=1, number_of_days=days, status=status),
    )


def test_minor_units_round_half_up():
    assert to_minor("10.005") == 1001
    assert to_minor(Decimal("0.004")) == 0
    assert to_minor(19.99) == 1999
    assert format_major(45000) == "450.00"


def test_one_diram_tolerance():
    assert amounts_match(30000, 30001)
    assert not amounts_match(30000, 30002)


def test_guide_hire_matches():
    assert validate_order_price(_guide_bundle()) == 30000


def test_guide_hire_price_change_is_a_mismatch():
    with pytest.raises(PriceMismatch) as exc:
        validate_order_price(_guide_bundle(price_per_day="150.00"))
    assert exc.value.expected == Decimal("450.00")
    assert exc.value.current == Decimal("300.00")


def test_guide_hire_within_one_diram_passes():
    assert validate_order_price(_guide_bundle(total="300.01")) == 30001


@pytest.mark.parametrize("price", [None, "0"])
def test_guide_without_rate_is_rejected(price):
    with pytest.raises(PriceValidationError):
        validate_order_price(_guide_bundle(price_per_day=price))


def test_guide_hire_must_be_approved():
    with pytest.raises(PriceValidationError, match="pending"):
        validate_order_price(_guide_bundle(status="pending"))


def test_transfer_prefers_final_price():
    b = OrderBundle(
        order=_order(OrderKind.TRANSFER, "320.00"),
        transfer_request=TransferRequest(id=1, estimated_price=Decimal("250"), final_price=Decimal("320"), status="quoted"),
    )
    assert expected_amount(b) == 32000
    assert validate_order_price(b) == 32000


def test_transfer_falls_back_to_estimate():
    b = OrderBundle(
        order=_order(OrderKind.TRANSFER, "320.00"),
        transfer_request=TransferRequest(id=1, estimated_price=Decimal("250"), final_price=None, status="pending"),
    )
    with pytest.raises(PriceMismatch):
        validate_order_price(b)


def test_transfer_in_closed_status_is_rejected():
    b = OrderBundle(
        order=_order(OrderKind.TRANSFER, "250.00"),
        transfer_request=TransferRequest(id=1, estimated_price=Decimal("250"), status="cancelled"),
    )
    with pytest.raises(PriceValidationError):
        validate_order_price(b)


def _custom_bundle(total, active_ids):
    comps = {
        1: CustomTourComponent(id=1, name="jeep", price=Decimal("120.50"), is_active=True),
        2: CustomTourComponent(id=2, name="yurt", price=Decimal("40.00"), is_active=True),
    }
    return OrderBundle(
        order=_order(OrderKind.CUSTOM_TOUR, total),
        custom_tour_order=CustomTourOrder(id=1, components=[{"id": 1, "quantity": 2}, {"id": 2, "quantity": 3}]),
        components={i: c for i, c in comps.items() if i in active_ids},
    )


def test_custom_tour_sums_components():
    assert validate_order_price(_custom_bundle("361.00", {1, 2})) == 36100


def test_custom_tour_with_deactivated_component_is_rejected():
    with pytest.raises(PriceValidationError, match="Component 2"):
        validate_order_price(_custom_bundle("361.00", {1}))


@pytest.mark.parametrize("entry", [{"quantity": 2}, {"id": None}, {"id": "jeep"}, "1"])
def test_custom_tour_with_malformed_component_entry_is_rejected(entry):
    b = _custom_bundle("361.00", {1, 2})
    b.custom_tour_order.components = [{"id": 1, "quantity": 2}, entry]
    with pytest.raises(PriceValidationError, match="malformed component"):
        validate_order_price(b)


def test_checkout_with_malformed_custom_tour_is_a_bad_request(client, factory, payler):
    comp = factory.component("100.00")
    cto = factory.custom_tour_order([(comp, 1)], total_price="100.00")
    with SessionLocal() as db:
        db.get(CustomTourOrder, cto.id).components = [{"id": comp.id, "quantity": 1}, {"quantity": 1}]
        db.commit()
    order = factory.order(kind=OrderKind.CUSTOM_TOUR, total="100.00", custom_tour_order_id=cto.id)

    r = client.post("/api/v1/payments/payler/create", json={"orderNumber": order.order_number})

    assert r.status_code == 400
    assert "malformed component" in r.json()["detail"]
    assert payler.sessions == []


def test_tour_orders_pass_through():
    b = OrderBundle(order=_order(OrderKind.TOUR, "999.99"))
    assert expected_amount(b) is None
    assert validate_order_price(b) == 99999
