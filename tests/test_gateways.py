import hashlib
import hmac
from decimal import Decimal
from unittest import mock

import pytest
import requests

from app.models.customer import Customer
from app.models.order import Order, OrderKind
from app.services.gateways.alif import AlifConfig, AlifGateway
from app.services.gateways.base import (
    GatewayConnectionError,
    GatewayDeclined,
    GatewayNotSupported,
    GatewayTimeout,
    GatewayTransientError,
    source_ip_allowed,
)
from app.services.gateways.payler import PaylerConfig, PaylerGateway
from app.services.payment_state import PaymentStatus


def _order():
    return Order(id=42, order_number="GUIDE-1700000000000-42", kind=OrderKind.GUIDE_HIRE, total_amount=Decimal("300"))


def _customer():
    return Customer(id=1, full_name="Anna", email="anna@example.com", phone="+992900000001")


@pytest.fixture
def alif():
    return AlifGateway(AlifConfig(
        merchant_key="KEY",
        merchant_password="PASS",
        form_url="https://web.alif.example/",
        callback_url="https://api.example/api/v1/payments/alif/callback",
        return_url="https://bunyodtour.example",
    ))


def _hex(key, msg):
    return hmac.new(key.encode(), msg.encode(), hashlib.sha256).hexdigest()


def test_alif_signs_session_with_derived_secret(alif):
    s = alif.create_session(_order(), _customer())
    secret = _hex("KEY", "PASS")
    expected = _hex(secret, "KEY" + "42" + "300.00" + "https://api.example/api/v1/payments/alif/callback")
    assert s.method == "POST"
    assert s.redirect_url == "https://web.alif.example/"
    assert s.form_fields["token"] == expected
    assert s.form_fields["amount"] == "300.00"
    assert s.form_fields["orderId"] == "42"
    assert s.form_fields["gate"] == "vsa"
    assert s.form_fields["email"] == "anna@example.com"


def test_alif_callback_token(alif):
    token = _hex(_hex("KEY", "PASS"), "42okT-1")
    assert alif.verify_callback("42", "ok", "T-1", token)
    assert not alif.verify_callback("42", "ok", "T-2", token)
    assert not alif.verify_callback("42", "ok", "T-1", None)


@pytest.mark.parametrize("raw,expected", [
    ("ok", PaymentStatus.PAID),
    ("SUCCESS", PaymentStatus.PAID),
    ("1", PaymentStatus.PAID),
    ("declined", PaymentStatus.FAILED),
    ("Cancelled", PaymentStatus.FAILED),
    ("refunded", PaymentStatus.REFUNDED),
    ("pending", PaymentStatus.PROCESSING),
    ("weird", None),
    (None, None),
])
def test_alif_status_vocabulary(alif, raw, expected):
    assert alif.map_status(raw) == expected


def test_alif_cannot_poll_or_refund(alif):
    with pytest.raises(GatewayNotSupported):
        alif.poll_status(_order())
    with pytest.raises(GatewayNotSupported):
        alif.refund(_order(), 100)


@pytest.fixture
def payler():
    return PaylerGateway(PaylerConfig(
        base_url="https://sandbox.payler.example",
        key="PKEY",
        password="PPASS",
        return_url="https://bunyodtour.example",
        callback_ips="178.20.235.180",
        timeout=5,
    ))


def _response(status_code=200, payload=None):
    r = mock.Mock()
    r.status_code = status_code
    r.text = "x" if payload is not None else ""
    r.json.return_value = payload
    return r


def test_payler_start_session(payler):
    with mock.patch("app.services.gateways.payler.requests.post", return_value=_response(200, {"session_id": "S1"})) as post:
        s = payler.create_session(_order(), _customer())
    assert s.session_ref == "S1"
    assert s.redirect_url == "https://sandbox.payler.example/gapi/Pay/?session_id=S1"
    url = post.call_args.args[0]
    fields = post.call_args.kwargs["data"]
    assert url == "https://sandbox.payler.example/gapi/StartSession"
    assert fields["amount"] == "30000"
    assert fields["type"] == "OneStep"
    assert fields["currency"] == "TJS"
    assert fields["order_id"] == "42"
    assert fields["return_url_success"].endswith("orderNumber=GUIDE-1700000000000-42")
    assert post.call_args.kwargs["timeout"] == 5


@pytest.mark.parametrize("raw,expected", [
    ("Charged", PaymentStatus.PAID),
    ("Rejected", PaymentStatus.FAILED),
    ("Refunded", PaymentStatus.REFUNDED),
    ("Authorized", PaymentStatus.PROCESSING),
    ("Reversed", None),
])
def test_payler_get_status(payler, raw, expected):
    payload = {"order_id": "42", "status": raw, "transaction_id": "T9"}
    with mock.patch("app.services.gateways.payler.requests.post", return_value=_response(200, payload)):
        st = payler.poll_status(_order())
    assert st.status == expected
    assert st.raw_status == raw
    assert st.transaction_ref == "T9"


def test_payler_refund_sends_password_and_dirams(payler):
    with mock.patch("app.services.gateways.payler.requests.post", return_value=_response(200, {"order_id": "42", "amount": 10000})) as post:
        res = payler.refund(_order(), 20000)
    fields = post.call_args.kwargs["data"]
    assert post.call_args.args[0].endswith("/gapi/Refund")
    assert fields == {"key": "PKEY", "password": "PPASS", "order_id": "42", "amount": "20000"}
    assert res.provider_ref == "42"


@pytest.mark.parametrize("exc,expected", [
    (requests.exceptions.ConnectionError("refused"), GatewayConnectionError),
    (requests.exceptions.ConnectTimeout("connect"), GatewayConnectionError),
    (requests.exceptions.ReadTimeout("read"), GatewayTimeout),
])
def test_payler_network_errors(payler, exc, expected):
    with mock.patch("app.services.gateways.payler.requests.post", side_effect=exc):
        with pytest.raises(expected):
            payler.poll_status(_order())


def test_payler_http_errors(payler):
    with mock.patch("app.services.gateways.payler.requests.post",
                    return_value=_response(400, {"error": {"code": 20, "message": "Invalid amount"}})):
        with pytest.raises(GatewayDeclined, match="Invalid amount"):
            payler.refund(_order(), 1)
    with mock.patch("app.services.gateways.payler.requests.post", return_value=_response(503, {})):
        with pytest.raises(GatewayTransientError):
            payler.poll_status(_order())


def test_source_ip_allow_list():
    allow = ["178.20.235.180", "10.1.0.0/16"]
    assert source_ip_allowed("178.20.235.180", allow)
    assert source_ip_allowed("10.1.44.2", allow)
    assert source_ip_allowed("127.0.0.1", [])
    assert source_ip_allowed("::1", [])
    assert not source_ip_allowed("8.8.8.8", allow)
    assert not source_ip_allowed("testclient", allow)
    assert not source_ip_allowed("", allow)
