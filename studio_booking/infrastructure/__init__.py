"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, close_redis
from .sql_booking_store import SqlBookingStore
from .sql_directory import SqlDirectory
from .notifiers import RedisNotifier, LoggingNotifier

__all__ = [
    'get_redis', 'close_redis',
    'SqlBookingStore', 'SqlDirectory',
    'RedisNotifier', 'LoggingNotifier',
]
