from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Tuple


class Category(str, Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    EDUCATION = "Education"
    ENTERTAINMENT = "Entertainment"
    HEALTH = "Health"
    SHOPPING = "Shopping"
    PERSONAL = "Personal"
    EMERGENCY = "Emergency"
    OTHER = "Other"


CATEGORY_NAMES: Tuple[str, ...] = tuple(c.value for c in Category)


@dataclass(frozen=True)
class Expense:
    description: str
    amount: Decimal       # always > 0, never rounded
    category: Category
    date: date            # the day the money was spent
    created_at: datetime  # default ordering key
    notes: str = ""
    id: Optional[str] = None  # assigned by storage

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def with_id(self, expense_id: str) -> "Expense":
        return replace(self, id=expense_id)


# Raw form input; nothing here is trusted until validated.
@dataclass(frozen=True)
class ExpenseDraft:
    description: Any = ""
    amount: Any = None
    category: Any = None
    date: Any = None
    notes: Any = None


@dataclass(frozen=True)
class User:
    uid: str
    email: str
    display_name: str = ""
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Snapshot:
    period_key: str
    sequence: int
    records: Tuple[Expense, ...] = field(default_factory=tuple)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"
