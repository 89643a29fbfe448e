import logging
from dataclasses import dataclass

import requests

from app.core.config import settings, split_csv
from app.core.money import CURRENCY, to_minor
from app.models.customer import Customer
from app.models.order import Order
from app.services.gateways.base import (
    GatewayAdapter,
    GatewayConnectionError,
    GatewayDeclined,
    GatewayError,
    GatewayTimeout,
    GatewayTransientError,
    RefundResult,
    SessionResult,
    StatusResult,
)
from app.services.payment_state import PaymentStatus

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "Charged": PaymentStatus.PAID,
    "Rejected": PaymentStatus.FAILED,
    "Refunded": PaymentStatus.REFUNDED,
    "Authorized": PaymentStatus.PROCESSING,
    "Created": PaymentStatus.PROCESSING,
    "Processing": PaymentStatus.PROCESSING,
}


@dataclass
class PaylerConfig:
    base_url: str           # https://secure.payler.com
    key: str                # merchant key
    password: str           # refund password
    return_url: str         # frontend base for success/decline pages
    callback_ips: str = ""
    timeout: int = 25


class PaylerClient:
    """Thin wrapper over the Payler gapi endpoints. All calls are form-encoded POSTs."""

    def __init__(self, cfg: PaylerConfig):
        self.cfg = cfg

    def request(self, method: str, fields: dict) -> dict:
        url = f"{self.cfg.base_url.rstrip('/')}/gapi/{method}"
        try:
            r = requests.post(url, data=fields, timeout=self.cfg.timeout)
        except requests.exceptions.ConnectTimeout as e:
            raise GatewayConnectionError(f"Payler {method}: connect timeout: {e}") from e
        except requests.exceptions.Timeout as e:
            raise GatewayTimeout(f"Payler {method}: timeout: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise GatewayConnectionError(f"Payler {method}: connection failed: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 500:
            raise GatewayTransientError(f"Payler {method} {r.status_code}: {data}")
        if r.status_code >= 400:
            err = data.get("error") if isinstance(data, dict) else None
            msg = err.get("message") if isinstance(err, dict) else data
            raise GatewayDeclined(f"Payler {method} {r.status_code}: {msg}", raw=data if isinstance(data, dict) else {})
        if not isinstance(data, dict):
            raise GatewayError(f"Payler {method}: unexpected response {data!r}")
        return data

    def start_session(self, *, order_id: str, amount_minor: int, email: str, return_url_success: str, return_url_decline: str) -> dict:
        return self.request("StartSession", {
            "key": self.cfg.key,
            "type": "OneStep",
            "currency": CURRENCY,
            "amount": str(amount_minor),
            "order_id": order_id,
            "email": email,
            "return_url_success": return_url_success,
            "return_url_decline": return_url_decline,
        })

    def get_status(self, *, order_id: str) -> dict:
        return self.request("GetStatus", {"key": self.cfg.key, "order_id": order_id})

    def refund(self, *, order_id: str, amount_minor: int) -> dict:
        return self.request("Refund", {
            "key": self.cfg.key,
            "password": self.cfg.password,
            "order_id": order_id,
            "amount": str(amount_minor),
        })


class PaylerGateway(GatewayAdapter):
    name = "payler"

    def __init__(self, cfg: PaylerConfig, client: PaylerClient | None = None):
        self.cfg = cfg
        self.client = client or PaylerClient(cfg)

    @classmethod
    def from_settings(cls) -> "PaylerGateway":
        return cls(PaylerConfig(
            base_url=settings.PAYLER_BASE_URL,
            key=settings.PAYLER_KEY,
            password=settings.PAYLER_PASSWORD,
            return_url=settings.FRONTEND_URL.rstrip("/"),
            callback_ips=settings.PAYLER_CALLBACK_IPS,
            timeout=settings.GATEWAY_TIMEOUT,
        ))

    @property
    def configured(self) -> bool:
        return bool(self.cfg.key)

    def pay_url(self, session_id: str) -> str:
        return f"{self.cfg.base_url.rstrip('/')}/gapi/Pay/?session_id={session_id}"

    def create_session(self, order: Order, customer: Customer | None) -> SessionResult:
        if not self.configured:
            raise GatewayError("Payler configuration missing (PAYLER_KEY)")
        amount = to_minor(order.total_amount)
        data = self.client.start_session(
            order_id=str(order.id),
            amount_minor=amount,
            email=(customer.email if customer else "") or "noemail@bunyodtour.tj",
            return_url_success=f"{self.cfg.return_url}/payment-success?orderNumber={order.order_number}",
            return_url_decline=f"{self.cfg.return_url}/payment-fail?orderNumber={order.order_number}",
        )
        session_id = data.get("session_id")
        if not session_id:
            raise GatewayError(f"Payler StartSession returned no session_id: {data}")
        logger.info("Payler session %s created for order %s (%s dirams)", session_id, order.order_number, amount)
        return SessionResult(session_ref=session_id, redirect_url=self.pay_url(session_id), raw=data)

    def poll_status(self, order: Order) -> StatusResult:
        data = self.client.get_status(order_id=str(order.id))
        raw_status = str(data.get("status") or "")
        ref = data.get("transaction_id") or data.get("session_id")
        return StatusResult(status=self.map_status(raw_status), raw_status=raw_status, transaction_ref=ref, raw=data)

    def refund(self, order: Order, amount_minor: int) -> RefundResult:
        if not self.cfg.password:
            raise GatewayError("Payler configuration missing (PAYLER_PASSWORD)")
        data = self.client.refund(order_id=str(order.id), amount_minor=amount_minor)
        ref = str(data.get("transaction_id") or data.get("order_id") or order.id)
        return RefundResult(provider_ref=ref, raw=data)

    def map_status(self, raw: str | None) -> PaymentStatus | None:
        if raw is None:
            return None
        return STATUS_MAP.get(str(raw).strip())

    def callback_ips(self) -> list[str]:
        return split_csv(self.cfg.callback_ips)
