# taskhub/schemas/recurrence.py
"""
Recurrence rule value type.

Week days are numbered 0 (Sunday) to 6 (Saturday); month days 1 to 31.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from taskhub.db.models.enums import RecurrenceFrequency

logger = logging.getLogger(__name__)


class RecurrenceRule(BaseModel):
    """Frequency plus optional day-of-week / day-of-month selectors."""

    model_config = ConfigDict(populate_by_name=True)

    frequency: RecurrenceFrequency = Field(..., description="Recurrence frequency")
    week_days: Optional[List[int]] = Field(
        None,
        description="Days of week for WEEKLY rules (0=Sunday .. 6=Saturday)",
        validation_alias=AliasChoices("week_days", "weekDays"),
    )
    month_days: Optional[List[int]] = Field(
        None,
        description="Days of month for MONTHLY rules (1..31)",
        validation_alias=AliasChoices("month_days", "monthDays"),
    )

    @field_validator("week_days")
    @classmethod
    def validate_week_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        invalid = [d for d in v if not 0 <= d <= 6]
        if invalid:
            raise ValueError(f"week days must be between 0 and 6, got {invalid}")
        return sorted(set(v))

    @field_validator("month_days")
    @classmethod
    def validate_month_days(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        if v is None:
            return v
        invalid = [d for d in v if not 1 <= d <= 31]
        if invalid:
            raise ValueError(f"month days must be between 1 and 31, got {invalid}")
        return sorted(set(v))

    @model_validator(mode="after")
    def check_selectors(self) -> "RecurrenceRule":
        if self.frequency == RecurrenceFrequency.WEEKLY and not self.week_days:
            raise ValueError("WEEKLY recurrence requires at least one week day")
        if self.frequency == RecurrenceFrequency.MONTHLY and not self.month_days:
            raise ValueError("MONTHLY recurrence requires at least one month day")
        return self

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> Optional["RecurrenceRule"]:
        """
        Load a rule from its stored JSON form.

        Stored rows predating validation may lack selectors; those load as a
        frequency-only rule. Returns None when no usable frequency is present.
        """
        if not raw:
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError:
            pass

        try:
            frequency = RecurrenceFrequency(str(raw.get("frequency", "")).upper())
        except ValueError:
            logger.warning(f"Unreadable recurrence config {raw!r}")
            return None
        logger.warning(
            f"Recurrence config {raw!r} has no valid selectors; using {frequency.value} only"
        )
        return cls.model_construct(frequency=frequency, week_days=None, month_days=None)
