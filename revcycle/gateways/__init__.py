"""
Gateway Module for the Revenue-Cycle Claims Engine.

Outbound transports to the clearinghouse, with a live HTTP implementation
and a simulator selected by configuration.
"""

from revcycle.gateways.base import (
    GatewayConfig,
    GatewayError,
    MalformedResponseError,
    ProviderAuthenticationError,
    ProviderHealth,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

__all__ = [
    "GatewayConfig",
    "GatewayError",
    "MalformedResponseError",
    "ProviderAuthenticationError",
    "ProviderHealth",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
]
