"""
Payment gateway adapters with a uniform initialize / verify contract.
"""
from .base import (
    GATEWAY_FAILED,
    GATEWAY_PENDING,
    GATEWAY_SUCCESS,
    GatewayInitRequest,
    GatewayInitResult,
    GatewayVerifyResult,
    PaymentGateway,
)
from .factory import GatewayFactory

__all__ = [
    "GATEWAY_FAILED",
    "GATEWAY_PENDING",
    "GATEWAY_SUCCESS",
    "GatewayInitRequest",
    "GatewayInitResult",
    "GatewayVerifyResult",
    "PaymentGateway",
    "GatewayFactory",
]
