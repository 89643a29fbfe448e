import threading
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import InvalidRefundAmount, RefundNotAllowed
from app.db.session import SessionLocal
from app.models.refund_log import RefundLog
from app.services.gateways.base import GatewayConnectionError, GatewayDeclined, GatewayTimeout
from app.services.refund_service import RefundService, compute_refund_amount


@pytest.fixture
def refunds(store, gateways):
    return RefundService(store, gateways)


def _logs(order_id):
    with SessionLocal() as db:
        return db.execute(select(RefundLog).where(RefundLog.order_id == order_id).order_by(RefundLog.id)).scalars().all()


def test_compute_refund_amount():
    assert compute_refund_amount(Decimal("1000"), 0, 0, None) == 100000
    assert compute_refund_amount(Decimal("1000"), 80000, 0, 50000) == 20000
    assert compute_refund_amount(Decimal("1000"), 40000, 40000, None) == 20000
    with pytest.raises(InvalidRefundAmount):
        compute_refund_amount(Decimal("1000"), 0, 0, 0)
    with pytest.raises(InvalidRefundAmount):
        compute_refund_amount(Decimal("1000"), 0, 0, -100)
    with pytest.raises(InvalidRefundAmount):
        compute_refund_amount(Decimal("1000"), 100000, 0, None)


def test_refunds_never_exceed_paid_amount(factory, store, refunds, payler):
    order = factory.order(total="1000.00", payment_status="paid")

    first = refunds.refund(order.id, Decimal("400"), "partial", "admin:1")
    second = refunds.refund(order.id, Decimal("400"), "partial", "admin:1")
    third = refunds.refund(order.id, Decimal("500"), "rest", "admin:1")

    assert (first.amount_dirams, first.payment_status) == (40000, "partially_refunded")
    assert (second.amount_dirams, second.payment_status) == (40000, "partially_refunded")
    assert (third.amount_dirams, third.payment_status) == (20000, "refunded")
    assert [amt for _, amt in payler.refunds] == [40000, 40000, 20000]
    assert sum(l.amount_dirams for l in _logs(order.id) if l.status == "success") == 100000
    assert store.get(order.id).payment_status == "refunded"

    with pytest.raises(RefundNotAllowed):
        refunds.refund(order.id, None, "again", "admin:1")


def test_full_refund_by_default(factory, store, refunds):
    order = factory.order(total="250.50", payment_status="paid")
    out = refunds.refund(order.id, None, "cancelled trip", "admin:7")
    assert out.amount_dirams == 25050
    assert out.payment_status == "refunded"
    log = _logs(order.id)[0]
    assert (log.status, log.processed_by, log.gateway, log.provider_ref) == ("success", "admin:7", "payler", "rf-1")


@pytest.mark.parametrize("status", ["unpaid", "processing", "failed", "refunded"])
def test_refund_requires_paid_order(factory, refunds, status):
    order = factory.order(payment_status=status)
    with pytest.raises(RefundNotAllowed):
        refunds.refund(order.id, None, "x", "admin:1")
    assert _logs(order.id) == []


def test_non_positive_amount_is_rejected(factory, refunds):
    order = factory.order(payment_status="paid")
    with pytest.raises(InvalidRefundAmount):
        refunds.refund(order.id, Decimal("-5"), "x", "admin:1")


def test_gateway_decline_leaves_order_untouched(factory, store, refunds, payler):
    order = factory.order(total="1000.00", payment_status="paid")
    payler.refund_errors.append(GatewayDeclined("insufficient balance"))

    with pytest.raises(GatewayDeclined):
        refunds.refund(order.id, Decimal("300"), "x", "admin:1")

    assert store.get(order.id).payment_status == "paid"
    [log] = _logs(order.id)
    assert log.status == "failed"
    assert "insufficient balance" in log.error
    # the failed row no longer reserves its amount
    assert store.refund_totals(order.id) == (0, 0)
    assert refunds.refund(order.id, None, "retry", "admin:1").amount_dirams == 100000


def test_connection_errors_are_retried(factory, refunds, payler):
    order = factory.order(total="100.00", payment_status="paid")
    payler.refund_errors.append(GatewayConnectionError("refused"))

    out = refunds.refund(order.id, None, "x", "admin:1")

    assert out.payment_status == "refunded"
    assert len(payler.refunds) == 1


def test_timeouts_are_not_retried_and_keep_the_reservation(factory, store, refunds, payler):
    order = factory.order(total="100.00", payment_status="paid")
    payler.refund_errors.append(GatewayTimeout("read timeout"))

    with pytest.raises(GatewayTimeout):
        refunds.refund(order.id, None, "x", "admin:1")

    assert payler.refunds == []
    [log] = _logs(order.id)
    assert (log.status, log.error) == ("pending", "read timeout")
    assert store.refund_totals(order.id) == (0, 10000)
    # the provider may already have paid out, so nothing is left to refund
    with pytest.raises(InvalidRefundAmount):
        refunds.refund(order.id, None, "again", "admin:1")
    assert payler.refunds == []
    assert store.get(order.id).payment_status == "paid"


def test_unknown_refund_resolved_as_paid_out(factory, store, refunds, payler):
    order = factory.order(total="100.00", payment_status="paid")
    payler.refund_errors.append(GatewayTimeout("read timeout"))
    with pytest.raises(GatewayTimeout):
        refunds.refund(order.id, None, "x", "admin:1")
    log_id = _logs(order.id)[0].id

    out = refunds.resolve(log_id, True, "PAYLER-RF-9", "seen in dashboard", "admin:2")

    assert (out.amount_dirams, out.payment_status) == (10000, "refunded")
    assert (_logs(order.id)[0].status, _logs(order.id)[0].provider_ref) == ("success", "PAYLER-RF-9")
    with pytest.raises(RefundNotAllowed):
        refunds.resolve(log_id, False, "", "", "admin:2")


def test_unknown_refund_resolved_as_not_paid_releases_amount(factory, store, refunds, payler):
    order = factory.order(total="100.00", payment_status="paid")
    payler.refund_errors.append(GatewayTimeout("read timeout"))
    with pytest.raises(GatewayTimeout):
        refunds.refund(order.id, None, "x", "admin:1")

    out = refunds.resolve(_logs(order.id)[0].id, False, "", "not in dashboard", "admin:2")

    assert out.payment_status == "paid"
    assert store.refund_totals(order.id) == (0, 0)
    assert refunds.refund(order.id, None, "retry", "admin:1").payment_status == "refunded"
    assert payler.refunds == [(order.order_number, 10000)]


def test_concurrent_refunds_cannot_over_refund(factory, store, refunds, payler):
    order = factory.order(total="1000.00", payment_status="paid")
    barrier = threading.Barrier(2)
    outcomes, errors = [], []

    def request():
        try:
            barrier.wait(timeout=10)
            outcomes.append(refunds.refund(order.id, Decimal("600"), "double click", "admin:1").amount_dirams)
        except InvalidRefundAmount as e:
            outcomes.append(e)
        except Exception as e:  # surfaced through `errors`
            errors.append(e)

    threads = [threading.Thread(target=request) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    amounts = sorted(o for o in outcomes if isinstance(o, int))
    assert amounts in ([40000, 60000], [60000])
    succeeded = sum(l.amount_dirams for l in _logs(order.id) if l.status == "success")
    assert succeeded == sum(amounts) <= 100000
    assert sorted(amt for _, amt in payler.refunds) == amounts


def test_refund_endpoint(client, factory):
    order = factory.order(total="1000.00", payment_status="paid")

    r = client.post("/api/v1/admin/payments/refund", json={"orderId": order.id, "amount": 400, "reason": "x", "adminId": "5"})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["amountDirams"] == 40000
    assert body["newPaymentStatus"] == "partially_refunded"

    r = client.get(f"/api/v1/admin/orders/{order.id}/refunds")
    assert r.status_code == 200
    listing = r.json()
    assert listing["refundedDirams"] == 40000
    assert listing["totalDirams"] == 100000
    assert listing["items"][0]["processedBy"] == "admin:5"


def test_refund_endpoint_errors(client, factory, payler):
    unpaid = factory.order(payment_status="unpaid")
    paid = factory.order(payment_status="paid")

    assert client.post("/api/v1/admin/payments/refund", json={"orderId": 424242, "adminId": "1"}).status_code == 404
    assert client.post("/api/v1/admin/payments/refund", json={"orderId": unpaid.id, "adminId": "1"}).status_code == 409
    assert client.post("/api/v1/admin/payments/refund", json={"orderId": paid.id, "amount": 0, "adminId": "1"}).status_code == 400

    payler.refund_errors.append(GatewayDeclined("nope"))
    r = client.post("/api/v1/admin/payments/refund", json={"orderId": paid.id, "adminId": "1"})
    assert r.status_code == 502


def test_refund_endpoint_timeout_and_resolution(client, factory, payler):
    order = factory.order(total="1000.00", payment_status="paid")
    payler.refund_errors.append(GatewayTimeout("read timeout"))

    r = client.post("/api/v1/admin/payments/refund", json={"orderId": order.id, "adminId": "1"})
    assert r.status_code == 504
    listing = client.get(f"/api/v1/admin/orders/{order.id}/refunds").json()
    assert listing["pendingDirams"] == 100000
    log_id = listing["items"][0]["id"]

    r = client.post(f"/api/v1/admin/refunds/{log_id}/resolve", json={"succeeded": True, "providerRef": "RF-1", "adminId": "2"})
    assert r.status_code == 200
    assert r.json()["newPaymentStatus"] == "refunded"

    assert client.post(f"/api/v1/admin/refunds/{log_id}/resolve", json={"succeeded": False, "adminId": "2"}).status_code == 409
    assert client.post("/api/v1/admin/refunds/999999/resolve", json={"succeeded": False, "adminId": "2"}).status_code == 404
