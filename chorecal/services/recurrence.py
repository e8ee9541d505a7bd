"""
Recurrence Encoder
Translates task frequencies into RFC 5545 recurrence rules.
"""
from dataclasses import dataclass
from typing import Optional, Union

from chorecal.schemas.sync import TaskFrequency

_FREQ_BY_TASK_FREQUENCY = {
    TaskFrequency.DAILY: "DAILY",
    TaskFrequency.WEEKLY: "WEEKLY",
    TaskFrequency.MONTHLY: "MONTHLY",
}


@dataclass(frozen=True)
class RecurrenceRule:
    """A repeating schedule: every ``interval`` units of ``freq``."""

    freq: str
    interval: int = 1

    def to_rrule(self) -> str:
        return f"RRULE:FREQ={self.freq};INTERVAL={self.interval}"


def encode_recurrence(
    frequency: Union[TaskFrequency, str, None],
    interval: Optional[int] = None,
) -> Optional[RecurrenceRule]:
    """
    Build the recurrence rule for a task, or None for a single occurrence.

    Monthly tasks always repeat every month; the stored interval is ignored.
    Unknown frequencies are treated as one-time.
    """
    try:
        frequency = TaskFrequency(frequency)
    except ValueError:
        return None

    freq = _FREQ_BY_TASK_FREQUENCY.get(frequency)
    if freq is None:
        return None

    if frequency is TaskFrequency.MONTHLY:
        return RecurrenceRule(freq, 1)

    if interval is None or interval < 1:
        interval = 1
    return RecurrenceRule(freq, interval)
