# File: taskhub/core/occurrence_ref.py
"""
Addressing for tasks and single occurrences of recurring tasks.

An occurrence of a recurring task is addressed externally as
``"<taskId>@<ISO 8601 date>"``. The string is parsed once, where it enters the
system, into an ``OccurrenceRef``; everything past that point works with the
parsed value.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from taskhub.core.exceptions import ValidationException
from taskhub.core.utils import format_iso, parse_iso_datetime

SEPARATOR = "@"


@dataclass(frozen=True)
class OccurrenceRef:
    task_id: int
    occurrence: Optional[datetime] = None

    @classmethod
    def parse(cls, raw: Union[str, int, "OccurrenceRef"]) -> "OccurrenceRef":
        """
        Parse a task id or composite occurrence id.

        The id is split on the first ``@`` only.

        Raises:
            ValidationException: If the task id is not an integer or the date is malformed
        """
        if isinstance(raw, OccurrenceRef):
            return raw
        if isinstance(raw, int):
            return cls(task_id=raw)

        task_part, sep, date_part = str(raw).partition(SEPARATOR)
        try:
            task_id = int(task_part.strip())
        except ValueError:
            raise ValidationException(
                f"Invalid task id: {raw!r}", {"id": ["task id must be an integer"]}
            )

        if not sep:
            return cls(task_id=task_id)
        if not date_part.strip():
            raise ValidationException(
                f"Invalid occurrence id: {raw!r}", {"id": ["missing occurrence date"]}
            )
        return cls(task_id=task_id, occurrence=parse_iso_datetime(date_part, "id"))

    @classmethod
    def for_occurrence(cls, task_id: int, occurrence: datetime) -> "OccurrenceRef":
        return cls(task_id=task_id, occurrence=occurrence)

    @property
    def is_occurrence(self) -> bool:
        return self.occurrence is not None

    @property
    def occurrence_date(self) -> Optional[date]:
        return self.occurrence.date() if self.occurrence else None

    def __str__(self) -> str:
        if self.occurrence is None:
            return str(self.task_id)
        return f"{self.task_id}{SEPARATOR}{format_iso(self.occurrence)}"
