"""
Calendar sync engine services.
"""

from chorecal.services.calendar_sync import CalendarSyncService
from chorecal.services.credential_store import CredentialStore
from chorecal.services.event_mapper import EventMapper, parse_due_time
from chorecal.services.reconciler import Reconciler
from chorecal.services.recurrence import RecurrenceRule, encode_recurrence
from chorecal.services.token_manager import TokenManager

__all__ = [
    "CalendarSyncService",
    "CredentialStore",
    "EventMapper",
    "parse_due_time",
    "Reconciler",
    "RecurrenceRule",
    "encode_recurrence",
    "TokenManager",
]
