# File: taskhub/services/occurrence_expander.py
"""
Expansion of recurring task templates into occurrence start times.

Expansion is a pure function of the template and the requested window, so
it is safe to call repeatedly and from any number of threads.
"""

import logging
from datetime import datetime, time, timedelta
from typing import List, Optional

from dateutil import rrule

from taskhub.db.models import Task, RecurrenceFrequency
from taskhub.schemas.recurrence import RecurrenceRule

logger = logging.getLogger(__name__)

FREQUENCY_MAP = {
    RecurrenceFrequency.DAILY: rrule.DAILY,
    RecurrenceFrequency.WEEKLY: rrule.WEEKLY,
    RecurrenceFrequency.MONTHLY: rrule.MONTHLY,
    RecurrenceFrequency.YEARLY: rrule.YEARLY,
}

# Indexed by our week-day numbering, 0 = Sunday
WEEKDAY_MAP = (rrule.SU, rrule.MO, rrule.TU, rrule.WE, rrule.TH, rrule.FR, rrule.SA)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


class OccurrenceExpander:
    """
    Enumerates the occurrences of a task inside a date window.

    The series is anchored at ``task.start_date_time``: every occurrence keeps
    the template's time of day, and each occurrence lasts exactly as long as
    the template (``due_date - start_date_time``).
    """

    def rule_for(self, task: Task) -> RecurrenceRule:
        rule = RecurrenceRule.from_stored(task.recurrence_config)
        if rule is None:
            logger.warning(
                f"Task {task.id} has recurrence enabled but no usable config; expanding DAILY"
            )
            rule = RecurrenceRule.model_construct(
                frequency=RecurrenceFrequency.DAILY, week_days=None, month_days=None
            )
        return rule

    def build_rrule(self, task: Task, until: Optional[datetime] = None) -> rrule.rrule:
        rule = self.rule_for(task)
        options = {
            "freq": FREQUENCY_MAP[rule.frequency],
            "dtstart": task.start_date_time,
        }
        if until is not None:
            options["until"] = until
        if rule.frequency == RecurrenceFrequency.WEEKLY and rule.week_days:
            options["byweekday"] = [WEEKDAY_MAP[d] for d in rule.week_days]
        if rule.frequency == RecurrenceFrequency.MONTHLY and rule.month_days:
            options["bymonthday"] = list(rule.month_days)
        return rrule.rrule(**options)

    def expand(
        self, task: Task, range_start: datetime, range_end: datetime
    ) -> List[datetime]:
        """
        Occurrence start times of ``task`` within ``[range_start, range_end]``.

        The upper bound is ``min(recurrence_end_date, range_end)`` and is
        inclusive by calendar day: an occurrence falling on that day is
        returned whatever its time of day.

        Returns:
            Ascending, duplicate-free list of naive UTC datetimes
        """
        if range_end < range_start:
            return []

        if not task.enable_recurrence:
            start = task.start_date_time
            return [start] if range_start <= start <= range_end else []

        end_date = task.recurrence_end_date
        if end_date is not None and end_date < range_start:
            return []

        bound = range_end if end_date is None else min(end_date, range_end)
        upper = end_of_day(bound)
        if upper < task.start_date_time:
            return []

        rule = self.build_rrule(task, until=upper)
        return list(rule.between(range_start, upper, inc=True))

    def due_for(self, task: Task, occurrence_start: datetime) -> datetime:
        """Due date of an occurrence, keeping the template's duration."""
        return occurrence_start + self.duration(task)

    @staticmethod
    def duration(task: Task) -> timedelta:
        if task.due_date is None or task.start_date_time is None:
            return timedelta(0)
        return task.due_date - task.start_date_time

    def occurs_on(self, task: Task, occurrence: datetime) -> bool:
        """Whether the series has an occurrence on the calendar day of ``occurrence``."""
        day_start = datetime.combine(occurrence.date(), time.min)
        return bool(self.expand(task, day_start, end_of_day(occurrence)))
