from datetime import date
from typing import Callable, Iterable, Iterator, Optional

from studyspend.domain import Category, Expense

Predicate = Callable[[Expense], bool]


def by_category(category: Category) -> Predicate:
    def _filter(e: Expense) -> bool:
        return e.category == category

    return _filter


def by_date_from(start: date) -> Predicate:
    def _filter(e: Expense) -> bool:
        return e.date >= start

    return _filter


def by_date_to(end: date) -> Predicate:
    def _filter(e: Expense) -> bool:
        return e.date <= end

    return _filter


def on_date(day: date) -> Predicate:
    def _filter(e: Expense) -> bool:
        return e.date == day

    return _filter


def by_search_text(text: Optional[str]) -> Predicate:
    needle = (text or "").strip().lower()

    def _filter(e: Expense) -> bool:
        if not needle:
            return True
        return needle in e.description.lower() or needle in e.category.value.lower()

    return _filter


def all_of(*preds: Predicate) -> Predicate:
    def _filter(e: Expense) -> bool:
        return all(p(e) for p in preds)

    return _filter


def iter_expenses(records: Iterable[Expense], pred: Predicate) -> Iterator[Expense]:
    for e in records:
        if pred(e):
            yield e
