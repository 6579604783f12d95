"""
Factory for creating payment gateways based on configuration.
"""
import logging

from app.core.errors import ValidationError
from app.services.payment_gateways.base import PaymentGateway
from app.services.payment_gateways.providers.etegram import EtegramGateway
from app.services.payment_gateways.providers.flutterwave import FlutterwaveGateway
from app.services.payment_gateways.providers.paystack import PaystackGateway

logger = logging.getLogger(__name__)


class GatewayFactory:
    """Factory for creating payment gateway providers."""

    PROVIDERS: dict[str, type[PaymentGateway]] = {
        "paystack": PaystackGateway,
        "flutterwave": FlutterwaveGateway,
        "etegram": EtegramGateway,
    }

    @classmethod
    def create(cls, provider_name: str, config: dict) -> PaymentGateway:
        """
        Create gateway instance by name.

        Raises:
            ValidationError: If provider name is unknown
        """
        provider_class = cls.PROVIDERS.get((provider_name or "").lower())
        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValidationError(
                f"Unknown payment provider: {provider_name}. Available providers: {available}"
            )

        gateway = provider_class(config)
        if not gateway.is_available():
            logger.warning("gateway_not_configured", extra={"provider": provider_name})
        return gateway

    @classmethod
    def create_from_settings(cls, settings, provider_name: str | None = None, transport=None) -> PaymentGateway:
        """Create a gateway from application settings (defaults to settings.default_payment_provider)."""
        name = (provider_name or "").strip().lower() or settings.default_payment_provider
        timeout = settings.payment_gateway_timeout

        if name == "paystack":
            config = {
                "secret_key": settings.paystack_secret_key,
                "api_url": settings.paystack_api_url,
                "timeout": timeout,
            }
        elif name == "flutterwave":
            config = {
                "secret_key": settings.flutterwave_secret_key,
                "secret_hash": settings.flutterwave_secret_hash,
                "api_url": settings.flutterwave_api_url,
                "timeout": timeout,
            }
        elif name == "etegram":
            config = {
                "public_key": settings.etegram_public_key,
                "project_id": settings.etegram_project_id,
                "api_url": settings.etegram_api_url,
                "timeout": timeout,
            }
        else:
            raise ValidationError(f"Payment provider {name} not supported")

        config["transport"] = transport
        return cls.create(name, config)
