"""Gateway registry and provider selection.

The registry is an explicit name → adapter mapping built once at process
start (``build_gateways``) and handed to ``PaymentService``; nothing looks
adapters up through module-level state.
"""

from collections.abc import Iterable

import structlog

from storefront.config import Settings
from storefront.errors import GatewayRejected
from storefront.gateway.fake_adapter import FakeGateway
from storefront.gateway.port import PaymentGateway
from storefront.gateway.sslcommerz_adapter import SSLCommerzGateway
from storefront.gateway.stripe_adapter import StripeGateway
from storefront.payment.payment import PaymentProvider

logger = structlog.get_logger(__name__)

# Currencies routed away from the default provider
_CURRENCY_ROUTES = {"BDT": PaymentProvider.SSLCOMMERZ}
DEFAULT_PROVIDER = PaymentProvider.STRIPE


def select_provider(currency: str) -> PaymentProvider:
    """Pick the gateway for a currency. BDT goes to SSLCommerz, everything else to Stripe."""
    return _CURRENCY_ROUTES.get((currency or "").upper(), DEFAULT_PROVIDER)


class GatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway], fallback: PaymentGateway | None = None) -> None:
        self._gateways = {gateway.name: gateway for gateway in gateways}
        self._fallback = fallback

    def get(self, provider: str | PaymentProvider) -> PaymentGateway:
        name = provider.value if isinstance(provider, PaymentProvider) else str(provider)
        gateway = self._gateways.get(name)
        if gateway is not None:
            return gateway
        if self._fallback is not None:
            return self._fallback
        raise GatewayRejected(f"No gateway registered for {name}", provider=name)

    def __contains__(self, provider) -> bool:
        name = provider.value if isinstance(provider, PaymentProvider) else str(provider)
        return name in self._gateways

    @property
    def names(self) -> list[str]:
        return sorted(self._gateways)


def build_gateways(settings: Settings) -> GatewayRegistry:
    """Construct every configured adapter once.

    Providers without credentials are left out. With ``use_fake_gateway`` (or
    outside production when nothing is configured) a ``FakeGateway`` stands in
    for every provider.
    """
    gateways: list[PaymentGateway] = []

    if settings.stripe_secret_key:
        gateways.append(
            StripeGateway(
                api_key=settings.stripe_secret_key,
                webhook_secret=settings.stripe_webhook_secret,
                timeout=settings.gateway_timeout,
            )
        )
    if settings.sslcommerz_store_id and settings.sslcommerz_store_password:
        gateways.append(
            SSLCommerzGateway(
                store_id=settings.sslcommerz_store_id,
                store_password=settings.sslcommerz_store_password,
                is_live=settings.sslcommerz_is_live,
                frontend_url=settings.frontend_url,
                timeout=settings.gateway_timeout,
            )
        )

    fake = None
    if settings.use_fake_gateway or (not gateways and not settings.is_production):
        fake = FakeGateway()
        gateways = [fake]

    logger.info("gateways_configured", gateways=[g.name for g in gateways], fake=fake is not None)
    return GatewayRegistry(gateways, fallback=fake)
