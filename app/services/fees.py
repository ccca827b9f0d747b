"""Pure fee arithmetic: elapsed parking time to billable hours and amount."""
import math
from datetime import timedelta
from decimal import Decimal

MS_PER_HOUR = 1000 * 60 * 60


def billable_hours(elapsed: timedelta | int | float, rounding_threshold_minutes: int) -> int:
    """Whole hours parked, plus one when the leftover minutes exceed the threshold.

    ``elapsed`` is a timedelta or a duration in milliseconds. A leftover exactly
    equal to the threshold rounds down.
    """
    if isinstance(elapsed, timedelta):
        elapsed_ms = elapsed.total_seconds() * 1000
    else:
        elapsed_ms = elapsed
    if elapsed_ms <= 0:
        return 0

    hours = elapsed_ms / MS_PER_HOUR
    integer_hours = math.floor(hours)
    remaining_minutes = (elapsed_ms - integer_hours * MS_PER_HOUR) / (1000 * 60)

    if remaining_minutes > rounding_threshold_minutes:
        return integer_hours + 1
    return integer_hours


def amount_due(hours: int, hourly_rate, discount=0) -> Decimal:
    """Fee for ``hours`` at ``hourly_rate`` less ``discount``, never below zero."""
    amount = Decimal(hours) * Decimal(str(hourly_rate)) - Decimal(str(discount))
    return max(Decimal("0"), amount)
