"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .khalti import KhaltiGateway
from .notifier import GatewayNotifier, LoggingNotifier
from .redis_client import RedisClient, close_redis, get_redis
from .stripe_gateway import StripeGateway

__all__ = [
    'get_redis', 'close_redis', 'RedisClient',
    'GatewayNotifier', 'LoggingNotifier',
    'KhaltiGateway', 'StripeGateway',
]
