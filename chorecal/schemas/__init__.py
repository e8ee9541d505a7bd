"""
ChoreCal Pydantic Schemas
Sync engine records and API request/response models.
"""
from chorecal.schemas.sync import (
    EventPayload,
    ExternalEvent,
    RemoteEvent,
    SyncResult,
    SyncWindow,
    TaskFrequency,
    TaskProjection,
)

__all__ = [
    "EventPayload",
    "ExternalEvent",
    "RemoteEvent",
    "SyncResult",
    "SyncWindow",
    "TaskFrequency",
    "TaskProjection",
]
