"""
Notifier factory.
Configures which notification transport the booking service uses.
"""

from studio_booking.core.config import get_settings
from studio_booking.infrastructure.notifiers import LoggingNotifier, RedisNotifier
from studio_booking.services.interfaces.notifier import Notifier


def build_notifier() -> Notifier:
    """
    Pick the notifier from configuration:
    - REDIS_ENABLED: RedisNotifier (messages consumed by the mail worker)
    - otherwise: LoggingNotifier
    """
    if get_settings().REDIS_ENABLED:
        return RedisNotifier()
    return LoggingNotifier()


# Singleton instance
_notifier: Notifier = None

def get_notifier() -> Notifier:
    """Get notifier singleton."""
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier
