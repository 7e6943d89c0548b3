"""Display helpers. Only presentation rounds; stored amounts stay exact."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[Decimal, int, float]


def round_whole(amount: Number) -> int:
    return int(Decimal(str(amount)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_currency(amount: Number, symbol: str = "₹") -> str:
    """Format an amount rounded to whole units.

    Example:
        >>> format_currency(Decimal("1234.5"))
        '₹1,235'
    """
    return f"{symbol}{round_whole(amount):,}"


def format_percent(value: Number) -> str:
    return f"{Decimal(str(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)}%"
