"""
Service interfaces for dependency inversion.
Allows swapping gateway implementations without changing business logic.
"""

from .notifier import Notifier
from .payment_gateway import GatewayCheckout, GatewayVerification, PaymentGateway

__all__ = ['Notifier', 'PaymentGateway', 'GatewayCheckout', 'GatewayVerification']
