"""Payment processor integrations."""

from .stripe_connect import STRIPE_API_BASE, StripeConnectGateway

__all__ = ["StripeConnectGateway", "STRIPE_API_BASE"]
