from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Final, Tuple

from studyspend.domain import Category, Expense, ExpenseDraft
from studyspend.errors import ValidationError
from studyspend.functional import Either, Left, Maybe, Nothing, Right, Some

MIN_PASSWORD_LENGTH: Final[int] = 6
MIN_BUDGET: Final[Decimal] = Decimal(100)
MIN_DURATION_DAYS: Final[int] = 1
MAX_DURATION_DAYS: Final[int] = 31


def parse_category(value: Any) -> Maybe[Category]:
    if isinstance(value, Category):
        return Some(value)
    for cat in Category:
        if cat.value == value:
            return Some(cat)
    return Nothing()


def parse_amount(value: Any) -> Either[str, Decimal]:
    if isinstance(value, bool) or value is None or value == "":
        return Left("Please enter an amount.")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        return Left("Amount must be a number.")
    if not amount.is_finite():
        return Left("Amount must be a number.")
    if amount <= 0:
        return Left("Amount must be greater than zero.")
    return Right(amount)


def parse_date(value: Any) -> Either[str, date]:
    if isinstance(value, datetime):
        return Right(value.date())
    if isinstance(value, date):
        return Right(value)
    if isinstance(value, str) and value.strip():
        try:
            return Right(date.fromisoformat(value.strip()))
        except ValueError:
            return Left(f"{value!r} is not a valid date.")
    return Left("Please choose a date.")


def _check_description(value: Any) -> Either[str, str]:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        return Left("Please enter a description.")
    return Right(text)


def _check_category(value: Any) -> Either[str, Category]:
    return parse_category(value).map(Right).get_or_else(
        Left(f"{value!r} is not a known category.")
    )


def validate_draft(draft: ExpenseDraft, now: datetime) -> Either[Dict[str, str], Expense]:
    """Check every field of a draft and collect all failures.

    Right holds a pending Expense (no id yet, created_at=now); Left maps each
    bad field to its message.
    """
    checks = {
        "description": _check_description(draft.description),
        "amount": parse_amount(draft.amount),
        "category": _check_category(draft.category),
        "date": parse_date(draft.date),
    }
    errors = {name: result.get_error() for name, result in checks.items() if result.is_left()}
    if errors:
        return Left(errors)

    values = {name: result.get_or_else(None) for name, result in checks.items()}
    notes = draft.notes.strip() if isinstance(draft.notes, str) else ""
    return Right(Expense(created_at=now, notes=notes, **values))


def check_period_settings(duration_days: Any, budget_amount: Any) -> Either[Dict[str, str], Tuple[int, Decimal]]:
    errors: Dict[str, str] = {}

    if isinstance(duration_days, bool) or not isinstance(duration_days, int):
        errors["duration_days"] = "Duration must be a whole number of days."
    elif not MIN_DURATION_DAYS <= duration_days <= MAX_DURATION_DAYS:
        errors["duration_days"] = (
            f"Duration must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS} days."
        )

    budget = parse_amount(budget_amount)
    if budget.is_left():
        errors["budget_amount"] = budget.get_error().replace("Amount", "Budget")
    elif budget.get_or_else(MIN_BUDGET) < MIN_BUDGET:
        errors["budget_amount"] = f"Budget must be at least {MIN_BUDGET}."

    if errors:
        return Left(errors)
    return Right((duration_days, budget.get_or_else(MIN_BUDGET)))


def validate_credentials(email: str, password: str) -> None:
    errors: Dict[str, str] = {}
    if not (email or "").strip():
        errors["email"] = "Please enter your email."
    if not password:
        errors["password"] = "Please enter your password."
    if errors:
        raise ValidationError(errors)


def validate_registration(display_name: str, email: str, password: str, confirm: str) -> None:
    errors: Dict[str, str] = {}
    if not (display_name or "").strip():
        errors["display_name"] = "Please enter your name."
    if not (email or "").strip():
        errors["email"] = "Please enter your email."
    if not password:
        errors["password"] = "Please enter a password."
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters!"
    if not confirm:
        errors["confirm"] = "Please confirm your password."
    elif password and password != confirm:
        errors["confirm"] = "Passwords do not match!"
    if errors:
        raise ValidationError(errors)
