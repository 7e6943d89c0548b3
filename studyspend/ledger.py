from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from studyspend.domain import Expense, ExpenseDraft
from studyspend.errors import ConsistencyError, ValidationError
from studyspend.validation import validate_draft


class LedgerState(str, Enum):
    EMPTY = "empty"
    POPULATED = "populated"


class Ledger:
    """In-memory record set for one owner's active period.

    Persisted records are keyed by id. The ledger never talks to storage;
    the sync adapter feeds it snapshots and confirmed writes.
    """

    def __init__(self, records: Iterable[Expense] = ()):
        self._records: Dict[str, Expense] = {}
        self._sequence: Optional[int] = None
        self._swap(records)

    def _swap(self, records: Iterable[Expense]) -> None:
        fresh: Dict[str, Expense] = {}
        for r in records:
            if r.id is None:
                raise ValueError("Ledger records must carry a storage id")
            fresh[r.id] = r
        self._records = fresh

    @property
    def sequence(self) -> Optional[int]:
        return self._sequence

    @property
    def state(self) -> LedgerState:
        return LedgerState.POPULATED if self._records else LedgerState.EMPTY

    def replace_all(self, records: Iterable[Expense], sequence: Optional[int] = None) -> None:
        # Same sequence is a redelivery and is applied again; older is rejected.
        if sequence is not None and self._sequence is not None and sequence < self._sequence:
            raise ConsistencyError(self._sequence, sequence)
        self._swap(records)
        if sequence is not None:
            self._sequence = sequence

    def add(self, draft: ExpenseDraft, now: Optional[datetime] = None) -> Expense:
        result = validate_draft(draft, now or datetime.now())
        if result.is_left():
            raise ValidationError(result.get_error())
        return result.get_or_else(None)

    def append(self, record: Expense) -> bool:
        """Merge a confirmed record. Returns False if a snapshot already had it."""
        if record.id is None:
            raise ValueError("Only persisted records can be appended")
        if record.id in self._records:
            return False
        self._records[record.id] = record
        return True

    def remove_all(self) -> None:
        self._records = {}

    def all(self) -> Tuple[Expense, ...]:
        return tuple(sorted(self._records.values(), key=lambda r: r.created_at, reverse=True))

    def ids(self) -> List[str]:
        return list(self._records)

    def total(self) -> Decimal:
        return sum((r.amount for r in self._records.values()), Decimal(0))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, expense_id: object) -> bool:
        return expense_id in self._records
