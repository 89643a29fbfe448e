"""Uniform contract over the payment providers.

Adapters translate provider vocabulary into PaymentStatus at this boundary;
nothing past it sees raw provider statuses.
"""
import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.models.customer import Customer
from app.models.order import Order
from app.services.payment_state import PaymentStatus

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    pass


class GatewayTransientError(GatewayError):
    """Provider unreachable or answered 5xx; the call may be repeated."""


class GatewayConnectionError(GatewayTransientError):
    """The request never reached the provider (DNS, refused, connect timeout)."""


class GatewayTimeout(GatewayTransientError):
    """The request was sent but no answer arrived in time; outcome unknown."""


class GatewayDeclined(GatewayError):
    def __init__(self, message: str, raw: dict | None = None):
        super().__init__(message)
        self.raw = raw or {}


class GatewayNotSupported(GatewayError):
    pass


@dataclass
class SessionResult:
    session_ref: str
    redirect_url: str
    method: str = "GET"  # GET: redirect; POST: browser submits form_fields to redirect_url
    form_fields: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)


@dataclass
class StatusResult:
    status: PaymentStatus | None
    raw_status: str
    transaction_ref: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class RefundResult:
    provider_ref: str
    raw: dict = field(default_factory=dict)


class GatewayAdapter(ABC):
    name: str = ""

    @abstractmethod
    def create_session(self, order: Order, customer: Customer | None) -> SessionResult: ...

    def poll_status(self, order: Order) -> StatusResult:
        raise GatewayNotSupported(f"{self.name} does not support status polling")

    def refund(self, order: Order, amount_minor: int) -> RefundResult:
        raise GatewayNotSupported(f"{self.name} does not support refunds")

    @abstractmethod
    def map_status(self, raw: str | None) -> PaymentStatus | None: ...

    @abstractmethod
    def callback_ips(self) -> list[str]: ...

    @property
    def configured(self) -> bool:
        return True


def is_loopback(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_loopback
    except ValueError:
        return False


def source_ip_allowed(ip: str | None, allow: list[str]) -> bool:
    """Loopback always passes; otherwise the address must be on `allow` (single IPs or CIDR blocks)."""
    if not ip:
        return False
    ip = ip.strip()
    if is_loopback(ip):
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for entry in allow:
        try:
            if addr in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning("Ignoring malformed callback allow-list entry %r", entry)
    return False
