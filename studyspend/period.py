import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Final, Optional, Union

from studyspend.errors import ValidationError
from studyspend.validation import check_period_settings

DEFAULT_DURATION_DAYS: Final[int] = 30
DEFAULT_BUDGET: Final[Decimal] = Decimal(10000)
DEFAULT_IDLE_TIMEOUT_MINUTES: Final[int] = 30

SECONDS_PER_DAY: Final[int] = 24 * 60 * 60


def _days_between(start: date, end: Union[date, datetime]) -> float:
    # A datetime counts partial days; start_date is taken at midnight.
    if isinstance(end, datetime):
        start_at = datetime.combine(start, datetime.min.time(), tzinfo=end.tzinfo)
        return (end - start_at).total_seconds() / SECONDS_PER_DAY
    return float((end - start).days)


@dataclass(frozen=True)
class Period:
    """The active budget window: ``start_date`` plus ``duration_days``, with a budget."""

    start_date: date
    duration_days: int = DEFAULT_DURATION_DAYS
    budget_amount: Decimal = DEFAULT_BUDGET

    @classmethod
    def create_default(cls, today: Optional[date] = None) -> "Period":
        return cls(start_date=today or date.today())

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.duration_days)

    def update(self, duration_days: int, budget_amount) -> "Period":
        """Return a copy with new duration/budget; start date is kept.

        Raises ValidationError naming each out-of-range field.
        """
        checked = check_period_settings(duration_days, budget_amount)
        if checked.is_left():
            raise ValidationError(checked.get_error())
        duration, budget = checked.get_or_else(None)
        return replace(self, duration_days=duration, budget_amount=budget)

    def restart(self, new_start_date: date) -> "Period":
        return replace(self, start_date=new_start_date)

    def days_elapsed(self, as_of: Union[date, datetime]) -> int:
        return max(1, math.ceil(_days_between(self.start_date, as_of)))

    def days_remaining(self, as_of: Union[date, datetime]) -> int:
        return max(0, math.ceil(self.duration_days - _days_between(self.start_date, as_of)))

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


@dataclass(frozen=True)
class UserSettings:
    period: Period = field(default_factory=Period.create_default)
    idle_timeout_minutes: int = DEFAULT_IDLE_TIMEOUT_MINUTES
