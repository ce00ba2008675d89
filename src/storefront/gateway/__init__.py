"""Payment gateway adapters.

``build_gateways(settings)`` returns the ``GatewayRegistry`` the payment
service is constructed with:
- StripeGateway for card payments in every currency but BDT
- SSLCommerzGateway for BDT
- FakeGateway for development and testing
"""

from storefront.gateway.port import PaymentGateway
from storefront.gateway.registry import GatewayRegistry, build_gateways, select_provider

__all__ = ["GatewayRegistry", "PaymentGateway", "build_gateways", "select_provider"]
