"""
Recurrence expansion for appointment series

Generates candidate appointments from a template carrying a RecurrenceRule.
Occurrences are neither persisted nor checked for conflicts here; callers run
each one through the booking validator before committing.
"""

import logging
from datetime import date, timedelta
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from ...config import RECURRENCE_MAX_OCCURRENCES
from .entities import Appointment, RecurrenceFrequency
from .errors import SchedulingError
from .occurrence import MonthlyOverflowPolicy, default_monthly_policy

logger = logging.getLogger(__name__)


def occurrence_date(anchor: date, frequency: RecurrenceFrequency, steps: int) -> date:
    """Advance `anchor` by `steps` units of `frequency`.

    Monthly steps land on the last day of shorter months (relativedelta clamps).
    """
    if frequency is RecurrenceFrequency.DAILY:
        return anchor + timedelta(days=steps)
    if frequency is RecurrenceFrequency.WEEKLY:
        return anchor + timedelta(weeks=steps)
    if frequency is RecurrenceFrequency.BIWEEKLY:
        return anchor + timedelta(weeks=2 * steps)
    if frequency is RecurrenceFrequency.MONTHLY:
        return anchor + relativedelta(months=steps)

    raise SchedulingError(f"Unhandled recurrence frequency: {frequency}")


def expand(
    template: Appointment,
    max_occurrences: Optional[int] = None,
    policy: Optional[MonthlyOverflowPolicy] = None,
) -> Iterator[Appointment]:
    """
    Lazily generate the occurrences of a recurring appointment.

    Occurrence k falls on the anchor date advanced by k * interval units of
    the rule's frequency and gets the id "<template id>-<k>". Generation stops
    at the rule's count, after its end date, or at the safety cap, whichever
    comes first. A template without a rule yields itself.
    """
    rule = template.recurrence_rule
    if rule is None:
        yield template
        return

    cap = RECURRENCE_MAX_OCCURRENCES if max_occurrences is None else max_occurrences
    policy = policy or default_monthly_policy()
    anchor = template.date

    emitted = 0
    step = 0
    while emitted < cap and (rule.count is None or emitted < rule.count):
        day = occurrence_date(anchor, rule.frequency, step * rule.interval)
        if rule.end_date and day > rule.end_date:
            break

        if (
            rule.frequency is RecurrenceFrequency.MONTHLY
            and policy is MonthlyOverflowPolicy.SKIP
            and day.day != anchor.day
        ):
            # Month too short for the anchor day
            step += 1
            continue

        yield template.model_copy(update={"id": f"{template.id}-{step}", "date": day}, deep=True)
        emitted += 1
        step += 1


def expand_with_cap(
    template: Appointment,
    max_occurrences: Optional[int] = None,
    policy: Optional[MonthlyOverflowPolicy] = None,
) -> tuple[list[Appointment], bool]:
    """
    Expand a series eagerly and report whether the safety cap truncated it.

    Returns:
        (occurrences, truncated). Truncation is a warning for the caller to
        surface, not an error.
    """
    cap = RECURRENCE_MAX_OCCURRENCES if max_occurrences is None else max_occurrences
    occurrences = list(expand(template, cap + 1, policy))
    truncated = len(occurrences) > cap
    if truncated:
        logger.warning(f"⚠️ Series {template.id} truncated at {cap} occurrences")
    return occurrences[:cap], truncated
