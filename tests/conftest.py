import os
import tempfile

# Settings are read at import time; point everything at a throwaway SQLite file first.
_DB_DIR = tempfile.mkdtemp(prefix="bunyod-payments-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENV"] = "test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["RETRY_BASE_DELAY"] = "0"
os.environ["ADMIN_EMAIL"] = "admin@bunyodtour.test"

from decimal import Decimal  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db.session import Base, SessionLocal, engine  # noqa: E402
from app.models.booking import Booking  # noqa: E402,F401
from app.models.audit_log import AuditLog  # noqa: E402,F401
from app.models.custom_tour_component import CustomTourComponent  # noqa: E402
from app.models.custom_tour_order import CustomTourOrder  # noqa: E402
from app.models.customer import Customer  # noqa: E402
from app.models.email_log import EmailLog  # noqa: E402,F401
from app.models.guide import Guide  # noqa: E402
from app.models.guide_hire_request import GuideHireRequest  # noqa: E402
from app.models.order import Order, OrderKind  # noqa: E402
from app.models.refund_log import RefundLog  # noqa: E402,F401
from app.models.tour import Tour  # noqa: E402
from app.models.transfer_request import TransferRequest  # noqa: E402
from app.services.gateways.alif import AlifConfig, AlifGateway  # noqa: E402
from app.services.gateways.base import (  # noqa: E402
    GatewayAdapter,
    RefundResult,
    SessionResult,
    StatusResult,
)
from app.services.gateways.payler import STATUS_MAP as PAYLER_STATUS_MAP  # noqa: E402
from app.services.gateways.registry import GatewayRegistry  # noqa: E402
from app.services.order_store import OrderStore  # noqa: E402
from app.services.reconciliation_service import ReconciliationEngine  # noqa: E402
from app.services.side_effects import SideEffectDispatcher  # noqa: E402

PAYLER_IP = "178.20.235.180"


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = []
    monkeypatch.setattr(
        "app.services.email_service.send_email",
        lambda to_email, subject, body: sent.append({"to": to_email, "subject": subject, "body": body}),
    )
    return sent


class FakeGateway(GatewayAdapter):
    """In-memory stand-in for a session gateway. Queue poll results / refund errors per test."""

    def __init__(self, name="payler", ips=(PAYLER_IP,)):
        self.name = name
        self.ips = list(ips)
        self.sessions = []
        self.polls = []
        self.refunds = []
        self.poll_queue = []
        self.refund_errors = []

    def create_session(self, order, customer):
        self.sessions.append(order.order_number)
        ref = f"sess-{order.id}-{len(self.sessions)}"
        return SessionResult(session_ref=ref, redirect_url=f"https://pay.example/{ref}")

    def queue_status(self, raw_status, transaction_ref="txn-1"):
        self.poll_queue.append(StatusResult(
            status=self.map_status(raw_status), raw_status=raw_status, transaction_ref=transaction_ref,
        ))

    def poll_status(self, order):
        self.polls.append(order.order_number)
        item = self.poll_queue.pop(0) if len(self.poll_queue) > 1 else self.poll_queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def refund(self, order, amount_minor):
        if self.refund_errors:
            raise self.refund_errors.pop(0)
        self.refunds.append((order.order_number, amount_minor))
        return RefundResult(provider_ref=f"rf-{len(self.refunds)}", raw={"amount": amount_minor})

    def map_status(self, raw):
        return PAYLER_STATUS_MAP.get(raw) if raw is not None else None

    def callback_ips(self):
        return self.ips


def alif_gateway(verify=False) -> AlifGateway:
    return AlifGateway(AlifConfig(
        merchant_key="alif-key",
        merchant_password="alif-pass",
        form_url="https://web.alif.example/",
        callback_url="https://api.bunyodtour.test/api/v1/payments/alif/callback",
        return_url="https://bunyodtour.test",
        callback_ips="",
        verify_callbacks=verify,
    ))


@pytest.fixture
def payler():
    return FakeGateway()


@pytest.fixture
def gateways(payler):
    return GatewayRegistry([alif_gateway(), payler])


@pytest.fixture
def store():
    return OrderStore(SessionLocal)


@pytest.fixture
def reconciler(store):
    return ReconciliationEngine(store, SideEffectDispatcher())


@pytest.fixture
def client(gateways):
    from app.api.deps import get_gateways
    from app.main import app

    app.dependency_overrides[get_gateways] = lambda: gateways
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class Factory:
    """Rows for tests. Each helper commits and returns detached instances."""

    def __init__(self):
        self._seq = count(1)

    def _add(self, *objs):
        db = SessionLocal()
        try:
            for o in objs:
                db.add(o)
            db.commit()
            return objs[0] if len(objs) == 1 else objs
        finally:
            db.close()

    def customer(self, email=None, full_name="Test Tourist"):
        n = next(self._seq)
        return self._add(Customer(full_name=full_name, email=email or f"tourist{n}@example.com", phone="+992900000000"))

    def order(self, kind=OrderKind.TOUR, total="1000.00", payment_status="unpaid", order_id=None,
              order_number=None, payment_method="payler", **fields):
        customer = fields.pop("customer", None) or self.customer()
        n = next(self._seq)
        prefix = {OrderKind.TOUR: "TOUR", OrderKind.GUIDE_HIRE: "GUIDE", OrderKind.TRANSFER: "TRF",
                  OrderKind.CUSTOM_TOUR: "CT"}[kind]
        o = Order(
            order_number=order_number or f"{prefix}-1700000000000-{n}",
            kind=kind,
            total_amount=Decimal(total),
            customer_id=customer.id,
            payment_status=payment_status,
            payment_method=payment_method,
            tourists=fields.pop("tourists", [{"name": "A"}, {"name": "B"}]),
            **fields,
        )
        if order_id is not None:
            o.id = order_id
        return self._add(o)

    def tour(self, price="500.00"):
        return self._add(Tour(title="Iskanderkul day trip", price=Decimal(price)))

    def guide(self, price_per_day="100.00"):
        return self._add(Guide(
            name="Farrukh",
            price_per_day=Decimal(price_per_day) if price_per_day is not None else None,
        ))

    def guide_hire_request(self, guide, days=3, status="approved", total_price=None):
        total = Decimal(total_price) if total_price is not None else (guide.price_per_day or 0) * days
        return self._add(GuideHireRequest(
            guide_id=guide.id,
            tourist_name="Anna",
            tourist_email="anna@example.com",
            selected_dates=[f"2026-05-0{i + 1}" for i in range(days)],
            number_of_days=days,
            total_price=total,
            status=status,
        ))

    def transfer_request(self, estimated="250.00", final=None, status="quoted"):
        return self._add(TransferRequest(
            full_name="Li Wei",
            email="li@example.com",
            pickup_location="DYU airport",
            dropoff_location="Hotel Serena",
            pickup_date="2026-06-01",
            pickup_time="09:30",
            estimated_price=Decimal(estimated) if estimated is not None else None,
            final_price=Decimal(final) if final is not None else None,
            status=status,
        ))

    def component(self, price, is_active=True, name="Pamir highway jeep"):
        return self._add(CustomTourComponent(name=name, country="Tajikistan", price=Decimal(price), is_active=is_active))

    def custom_tour_order(self, items, total_price, status="pending"):
        return self._add(CustomTourOrder(
            full_name="Sam",
            email="sam@example.com",
            selected_countries=["Tajikistan"],
            components=[{"id": c.id, "quantity": q} for c, q in items],
            total_price=Decimal(total_price),
            status=status,
        ))

    def guide_hire_order(self, price_per_day="100.00", days=3, total=None, request_status="approved", **order_fields):
        guide = self.guide(price_per_day)
        req = self.guide_hire_request(guide, days=days, status=request_status)
        total = total if total is not None else str(Decimal(price_per_day) * days)
        order = self.order(kind=OrderKind.GUIDE_HIRE, total=total, guide_hire_request_id=req.id, **order_fields)
        return order, req, guide


@pytest.fixture
def factory():
    return Factory()
