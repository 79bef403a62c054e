"""Payment gateway registry.

Routes payment operations to the appropriate gateway adapter.
No business logic here - only gateway coordination.
"""

from functools import lru_cache

from stayledger.config import Settings, get_settings
from stayledger.gateways.base import GatewayType, PaymentGateway
from stayledger.gateways.paystack import PaystackGateway
from stayledger.gateways.stripe_gateway import StripeGateway


class GatewayRegistry:
    """Lookup of configured gateway adapters by type."""

    def __init__(self, gateways: dict[GatewayType, PaymentGateway]):
        self._gateways = dict(gateways)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayRegistry":
        return cls(
            {
                GatewayType.STRIPE: StripeGateway(
                    secret_key=settings.stripe_secret_key,
                    webhook_secret=settings.stripe_webhook_secret,
                ),
                GatewayType.PAYSTACK: PaystackGateway(
                    secret_key=settings.paystack_secret_key,
                    base_url=settings.paystack_base_url,
                ),
            }
        )

    def get(self, gateway_type: str | GatewayType) -> PaymentGateway:
        """Get gateway instance.

        Raises:
            KeyError: If the gateway is unknown or not registered
        """
        if isinstance(gateway_type, str):
            gateway_type = GatewayType(gateway_type)
        return self._gateways[gateway_type]

    def __contains__(self, gateway_type: object) -> bool:
        try:
            return GatewayType(gateway_type) in self._gateways
        except ValueError:
            return False


@lru_cache
def get_gateway_registry() -> GatewayRegistry:
    """FastAPI dependency and task-side accessor for the gateway registry."""
    return GatewayRegistry.from_settings(get_settings())
