import hashlib
import hmac
import logging
from dataclasses import dataclass

from app.core.config import settings, split_csv
from app.core.money import format_major, to_minor
from app.models.customer import Customer
from app.models.order import Order
from app.services.gateways.base import GatewayAdapter, GatewayError, SessionResult
from app.services.payment_state import PaymentStatus

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "ok": PaymentStatus.PAID,
    "success": PaymentStatus.PAID,
    "paid": PaymentStatus.PAID,
    "charged": PaymentStatus.PAID,
    "complete": PaymentStatus.PAID,
    "completed": PaymentStatus.PAID,
    "1": PaymentStatus.PAID,
    "true": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "fail": PaymentStatus.FAILED,
    "declined": PaymentStatus.FAILED,
    "rejected": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "error": PaymentStatus.FAILED,
    "0": PaymentStatus.FAILED,
    "false": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "pending": PaymentStatus.PROCESSING,
    "processing": PaymentStatus.PROCESSING,
    "created": PaymentStatus.PROCESSING,
}


@dataclass
class AlifConfig:
    merchant_key: str
    merchant_password: str
    form_url: str
    callback_url: str
    return_url: str
    gate: str = "vsa"
    callback_ips: str = ""
    verify_callbacks: bool = False


def _hmac_sha256_hex(key: str, msg: str) -> str:
    return hmac.new(key.encode("utf-8"), msg.encode("utf-8"), hashlib.sha256).hexdigest()


class AlifGateway(GatewayAdapter):
    """Legacy form gateway: the browser POSTs signed fields to Alif; result comes back by callback."""

    name = "alif"

    def __init__(self, cfg: AlifConfig):
        self.cfg = cfg

    @classmethod
    def from_settings(cls) -> "AlifGateway":
        base = settings.BASE_URL.rstrip("/")
        return cls(AlifConfig(
            merchant_key=settings.ALIF_MERCHANT_KEY,
            merchant_password=settings.ALIF_MERCHANT_PASSWORD,
            form_url=settings.ALIF_FORM_URL,
            callback_url=f"{base}/api/v1/payments/alif/callback",
            return_url=settings.FRONTEND_URL.rstrip("/"),
            gate=settings.ALIF_GATE,
            callback_ips=settings.ALIF_CALLBACK_IPS,
            verify_callbacks=settings.ALIF_CALLBACK_VERIFY,
        ))

    @property
    def configured(self) -> bool:
        return bool(self.cfg.merchant_key and self.cfg.merchant_password)

    @property
    def secret_key(self) -> str:
        return _hmac_sha256_hex(self.cfg.merchant_key, self.cfg.merchant_password)

    def sign_session(self, order_id: str, amount: str) -> str:
        return _hmac_sha256_hex(self.secret_key, self.cfg.merchant_key + order_id + amount + self.cfg.callback_url)

    def sign_callback(self, order_id: str, status: str, transaction_id: str) -> str:
        return _hmac_sha256_hex(self.secret_key, f"{order_id}{status}{transaction_id}")

    def verify_callback(self, order_id: str, status: str, transaction_id: str, token: str | None) -> bool:
        if not token:
            return False
        return hmac.compare_digest(self.sign_callback(order_id, status, transaction_id), token)

    def create_session(self, order: Order, customer: Customer | None) -> SessionResult:
        if not self.configured:
            raise GatewayError("Alif configuration missing (ALIF_MERCHANT_KEY/ALIF_MERCHANT_PASSWORD)")
        order_id = str(order.id)
        amount = format_major(to_minor(order.total_amount))
        fields = {
            "key": self.cfg.merchant_key,
            "token": self.sign_session(order_id, amount),
            "orderId": order_id,
            "amount": amount,
            "callbackUrl": self.cfg.callback_url,
            "returnUrl": f"{self.cfg.return_url}/payment-success?orderNumber={order.order_number}",
            "info": f"Payment for order {order.order_number}",
            "email": (customer.email if customer else "") or "",
            "phone": (customer.phone if customer else "") or "",
            "gate": self.cfg.gate,
        }
        logger.info("Alif form prepared for order %s amount %s", order.order_number, amount)
        return SessionResult(session_ref=order_id, redirect_url=self.cfg.form_url, method="POST", form_fields=fields)

    def map_status(self, raw: str | None) -> PaymentStatus | None:
        if raw is None:
            return None
        return STATUS_MAP.get(str(raw).strip().lower())

    def callback_ips(self) -> list[str]:
        return split_csv(self.cfg.callback_ips)
