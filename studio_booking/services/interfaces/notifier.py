"""
Notifier interface for transactional messages on booking state changes.
"""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """
    Implementations:
    - RedisNotifier: publishes the message on a Redis channel
    - LoggingNotifier: logs the message only
    """

    @abstractmethod
    async def notify(self, event: str, recipient: str, payload: dict) -> None:
        """
        Deliver one message.

        Args:
            event: Event name, e.g. "booking_created"
            recipient: Email address of the user to inform
            payload: JSON-serializable details
        """
        pass
