from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from studyspend.domain import Category, Expense
from studyspend.filters import (
    all_of,
    by_category,
    by_date_from,
    by_date_to,
    by_search_text,
    iter_expenses,
    on_date,
)
from studyspend.period import Period
from studyspend.validation import parse_category

ZERO = Decimal(0)
HUNDRED = Decimal(100)

EXPORT_COLUMNS: Tuple[str, ...] = ("Date", "Description", "Category", "Amount", "Notes")

# Values the history filter treats as "no category selected".
ANY_CATEGORY = (None, "", "All")


@dataclass(frozen=True)
class DashboardSummary:
    total_spent: Decimal
    budget_amount: Decimal
    remaining: Decimal
    progress_percent: Decimal
    today_spent: Decimal
    today_count: int
    daily_average: Decimal
    days_left: int


@dataclass(frozen=True)
class HistoryView:
    records: Tuple[Expense, ...]
    count: int
    total_amount: Decimal
    average_amount: Decimal


def _total(records: Iterable[Expense]) -> Decimal:
    return sum((r.amount for r in records), ZERO)


def dashboard_summary(
    records: Sequence[Expense], period: Period, as_of: Union[date, datetime]
) -> DashboardSummary:
    today = as_of.date() if isinstance(as_of, datetime) else as_of
    total = _total(records)
    todays = list(iter_expenses(records, on_date(today)))
    budget = period.budget_amount

    return DashboardSummary(
        total_spent=total,
        budget_amount=budget,
        remaining=max(ZERO, budget - total),
        progress_percent=min(HUNDRED, total / budget * HUNDRED),
        today_spent=_total(todays),
        today_count=len(todays),
        daily_average=total / period.days_elapsed(as_of),
        days_left=period.days_remaining(as_of),
    )


def category_breakdown(records: Iterable[Expense]) -> Dict[Category, Decimal]:
    totals: Dict[Category, Decimal] = defaultdict(lambda: ZERO)
    for r in records:
        totals[r.category] += r.amount
    return dict(totals)


def top_categories(records: Iterable[Expense], k: int) -> Iterator[Tuple[Category, Decimal]]:
    ordered = sorted(category_breakdown(records).items(), key=lambda item: item[1], reverse=True)
    for category, total in ordered[: max(0, k)]:
        yield category, total


def filter_history(
    records: Sequence[Expense],
    search_text: str = "",
    category: Union[Category, str, None] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> HistoryView:
    """Select records matching every given criterion, keeping input order.

    ``search_text`` is matched case-insensitively against description or
    category name. A category that is not one of the known ones matches
    nothing.
    """
    preds = [by_search_text(search_text)]
    if category not in ANY_CATEGORY:
        wanted = parse_category(category)
        if wanted.is_none():
            return HistoryView(records=(), count=0, total_amount=ZERO, average_amount=ZERO)
        preds.append(by_category(wanted.get_or_else(None)))
    if date_from is not None:
        preds.append(by_date_from(date_from))
    if date_to is not None:
        preds.append(by_date_to(date_to))

    matches = tuple(iter_expenses(records, all_of(*preds)))
    total = _total(matches)
    return HistoryView(
        records=matches,
        count=len(matches),
        total_amount=total,
        average_amount=total / len(matches) if matches else ZERO,
    )


def recent_activity(records: Sequence[Expense], limit: int = 5) -> Tuple[Expense, ...]:
    return tuple(records[: max(0, limit)])


def export_rows(records: Iterable[Expense]) -> List[Dict[str, object]]:
    return [
        {
            "Date": r.date.isoformat(),
            "Description": r.description,
            "Category": r.category.value,
            "Amount": r.amount,
            "Notes": r.notes or "",
        }
        for r in records
    ]
