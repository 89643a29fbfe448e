from app.services.gateways.alif import AlifGateway
from app.services.gateways.base import GatewayAdapter
from app.services.gateways.payler import PaylerGateway


class UnknownGateway(KeyError):
    pass


class GatewayRegistry:
    def __init__(self, adapters: list[GatewayAdapter]):
        self._adapters = {a.name: a for a in adapters}

    @classmethod
    def from_settings(cls) -> "GatewayRegistry":
        return cls([AlifGateway.from_settings(), PaylerGateway.from_settings()])

    def get(self, name: str | None) -> GatewayAdapter:
        try:
            return self._adapters[(name or "").lower()]
        except KeyError:
            raise UnknownGateway(name) from None

    def names(self) -> list[str]:
        return list(self._adapters)

    def configured(self) -> list[str]:
        return [n for n, a in self._adapters.items() if a.configured]
