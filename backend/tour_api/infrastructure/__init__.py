"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, RedisClient
from .stripe_gateway import StripeGateway, get_payment_gateway

__all__ = ['get_redis', 'RedisClient', 'StripeGateway', 'get_payment_gateway']
