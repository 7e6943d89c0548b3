from datetime import datetime
from typing import Callable, Optional

from studyspend.domain import Expense, ExpenseDraft, Snapshot, month_key
from studyspend.errors import ConsistencyError
from studyspend.gateway import DocumentStore, Subscription
from studyspend.ledger import Ledger
from studyspend.logger import setup_logger

logger = setup_logger(__name__)


class SyncAdapter:
    """Connects one owner's Ledger to the document store.

    Store snapshots become ``Ledger.replace_all`` calls; ledger intents
    (submit, clear) become store writes. Only the attached period key may
    change the ledger.
    """

    def __init__(self, store: DocumentStore, owner_id: str, clock: Callable[[], datetime] = datetime.now):
        self._store = store
        self._owner_id = owner_id
        self._clock = clock
        self._ledger = Ledger()
        self._period_key: Optional[str] = None
        self._subscription: Optional[Subscription] = None
        self.discarded = 0

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def period_key(self) -> Optional[str]:
        return self._period_key

    @property
    def attached(self) -> bool:
        return self._subscription is not None

    def attach(self, period_key: str) -> Ledger:
        # Unsubscribe first so the old period can never write into the new ledger.
        self.detach()
        self._ledger = Ledger()
        self._period_key = period_key
        self._subscription = self._store.subscribe(
            self._owner_id,
            period_key,
            lambda snapshot: self.handle_snapshot(period_key, snapshot),
        )
        logger.info("Attached %s to period %s", self._owner_id, period_key)
        return self._ledger

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Detached %s from period %s", self._owner_id, self._period_key)
        self._period_key = None

    def handle_snapshot(self, period_key: str, snapshot: Snapshot) -> bool:
        """Apply a pushed snapshot. Returns False when it was dropped."""
        if period_key != self._period_key:
            logger.info("Dropping snapshot for detached period %s", period_key)
            self.discarded += 1
            return False
        try:
            self._ledger.replace_all(snapshot.records, snapshot.sequence)
        except ConsistencyError as e:
            logger.warning("Discarding snapshot for %s: %s", period_key, e.message)
            self.discarded += 1
            return False
        logger.debug("Applied snapshot %d for %s (%d records)", snapshot.sequence, period_key, len(snapshot.records))
        return True

    async def submit(self, draft: ExpenseDraft) -> Expense:
        """Validate, persist and merge a new expense.

        The record is stored under the month of its spend date and only
        merged into the ledger when that month is the attached one. The
        store's snapshot for this write may arrive before or after the create
        call returns; ``Ledger.append`` ignores the duplicate.
        """
        if self._period_key is None:
            raise RuntimeError("SyncAdapter.submit called before attach()")
        pending = self._ledger.add(draft, now=self._clock())
        period_key = month_key(pending.date)
        expense_id = await self._store.create(self._owner_id, period_key, pending)
        persisted = pending.with_id(expense_id)
        if period_key == self._period_key:
            self._ledger.append(persisted)
        logger.info("Added expense %s (%s %s) for %s", expense_id, persisted.amount, persisted.category.value, self._owner_id)
        return persisted

    async def clear(self) -> None:
        if self._period_key is None:
            return
        await self._store.delete_all(self._owner_id, self._period_key)
        self._ledger.remove_all()
        logger.info("Cleared period %s for %s", self._period_key, self._owner_id)
