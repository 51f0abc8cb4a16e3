"""
Service interfaces for dependency inversion.
The booking service only talks to these; SQL, Redis and test doubles plug in behind them.
"""

from .booking_store import BookingStore, BookingDraft, BookingFilter, StaleBooking, StoreConflict
from .directory import Directory
from .notifier import Notifier

__all__ = [
    'BookingStore', 'BookingDraft', 'BookingFilter', 'StaleBooking', 'StoreConflict',
    'Directory', 'Notifier',
]
