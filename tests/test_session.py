from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from studyspend.domain import ExpenseDraft
from studyspend.errors import SyncError, ValidationError
from studyspend.events import SESSION_STATUS
from studyspend.memory import InMemoryDocumentStore, InMemoryIdentityProvider, build_gateway
from studyspend.period import Period, UserSettings
from studyspend.session import SessionManager, SessionStatus


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_manager(now=datetime(2024, 3, 1, 9, 0)):
    clock = FakeClock(now)
    identity = InMemoryIdentityProvider(clock=clock)
    store = InMemoryDocumentStore()
    manager = SessionManager(identity, store, clock=clock)
    statuses = []
    manager.bus.subscribe(SESSION_STATUS, lambda e, p: statuses.append(p["state"].status))
    return manager, identity, store, clock, statuses


async def signed_in_manager():
    manager, identity, store, clock, statuses = make_manager()
    await manager.start()
    await manager.sign_up("Asha", "asha@example.com", "secret1", "secret1")
    return manager, identity, store, clock, statuses


@pytest.mark.asyncio
async def test_start_without_user_is_signed_out():
    manager, _, _, _, statuses = make_manager()
    assert manager.status is SessionStatus.UNKNOWN

    await manager.start()

    assert manager.status is SessionStatus.SIGNED_OUT
    assert manager.session is None
    assert statuses == [SessionStatus.SIGNED_OUT]


@pytest.mark.asyncio
async def test_start_restores_persisted_user():
    manager, identity, _, _, _ = make_manager()
    identity.add_account("asha@example.com", "secret1", "Asha")
    await identity.sign_in("asha@example.com", "secret1")

    state = await manager.start()

    assert state.status is SessionStatus.SIGNED_IN
    assert state.user.email == "asha@example.com"
    assert manager.session.period_key == "2024-03"


@pytest.mark.asyncio
async def test_sign_up_opens_session_with_default_period():
    manager, _, store, _, statuses = await signed_in_manager()

    assert statuses == [SessionStatus.SIGNED_OUT, SessionStatus.SIGNED_IN]
    session = manager.session
    assert session.user.display_name == "Asha"
    assert session.period == Period(date(2024, 3, 1), 30, Decimal(10000))
    assert await store.get_user_settings(session.user.uid) == session.settings


@pytest.mark.asyncio
async def test_existing_settings_are_loaded():
    manager, identity, store, _, _ = make_manager()
    user = identity.add_account("asha@example.com", "secret1", "Asha")
    saved = UserSettings(period=Period(date(2024, 2, 20), 14, Decimal(2000)), idle_timeout_minutes=5)
    await store.set_user_settings(user.uid, saved)
    await manager.start()

    await manager.sign_in("asha@example.com", "secret1")

    assert manager.session.period == saved.period
    assert manager.session.settings.idle_timeout_minutes == 30


@pytest.mark.asyncio
async def test_sign_in_validation_error_keeps_signed_out():
    manager, _, _, _, _ = make_manager()
    await manager.start()

    with pytest.raises(ValidationError):
        await manager.sign_in("", "")
    assert manager.status is SessionStatus.SIGNED_OUT


@pytest.mark.asyncio
async def test_sign_in_wrong_password_has_user_message():
    manager, identity, _, _, _ = make_manager()
    identity.add_account("asha@example.com", "secret1")
    await manager.start()

    with pytest.raises(SyncError) as exc:
        await manager.sign_in("asha@example.com", "wrong-one")
    assert exc.value.user_message == "Incorrect password. Please try again."
    assert manager.status is SessionStatus.SIGNED_OUT


@pytest.mark.asyncio
async def test_sign_up_password_mismatch():
    manager, _, _, _, _ = make_manager()
    await manager.start()
    with pytest.raises(ValidationError) as exc:
        await manager.sign_up("Asha", "asha@example.com", "secret1", "secret2")
    assert exc.value.fields == ("confirm",)


@pytest.mark.asyncio
async def test_cancelled_oauth_popup_is_not_an_error():
    manager, identity, _, _, _ = make_manager()
    identity.register_oauth_profile("google", "g@example.com", "G")
    await manager.start()
    identity.fail_next("auth/popup-closed-by-user")

    assert await manager.sign_in_with_oauth() is None
    assert manager.status is SessionStatus.SIGNED_OUT

    user = await manager.sign_in_with_oauth()
    assert user.email == "g@example.com"
    assert manager.status is SessionStatus.SIGNED_IN


@pytest.mark.asyncio
async def test_blocked_oauth_popup_is_raised():
    manager, identity, _, _, _ = make_manager()
    await manager.start()
    identity.fail_next("auth/popup-blocked")
    with pytest.raises(SyncError) as exc:
        await manager.sign_in_with_oauth()
    assert not exc.value.suppressed


@pytest.mark.asyncio
async def test_add_expense_and_summary():
    manager, _, store, _, _ = await signed_in_manager()
    session = manager.session

    expense = await session.add_expense(ExpenseDraft("Coffee", 150, "Food", "2024-03-01"))
    summary = session.summary(date(2024, 3, 1))

    assert session.ledger.ids() == [expense.id]
    assert store.count(session.user.uid, "2024-03") == 1
    assert summary.total_spent == Decimal(150)
    assert summary.remaining == Decimal(9850)
    assert summary.progress_percent == Decimal("1.5")
    assert summary.days_left == 30
    assert session.recent() == (expense,)
    assert session.breakdown() == {expense.category: Decimal(150)}


@pytest.mark.asyncio
async def test_history_and_export():
    manager, _, _, clock, _ = await signed_in_manager()
    session = manager.session
    await session.add_expense(ExpenseDraft("Lunch", 120, "Food", "2024-03-01"))
    clock.advance(minutes=5)
    await session.add_expense(ExpenseDraft("Train", 80, "Transport", "2024-03-01", notes="return"))

    view = session.history(category="Transport")
    assert view.count == 1
    assert view.total_amount == Decimal(80)

    payload = session.export_csv()
    assert payload.splitlines() == [
        "Date,Description,Category,Amount,Notes",
        '"2024-03-01","Train","Transport","80","return"',
        '"2024-03-01","Lunch","Food","120",""',
    ]


@pytest.mark.asyncio
async def test_switch_period_gives_fresh_ledger():
    manager, _, _, _, _ = await signed_in_manager()
    session = manager.session
    await session.add_expense(ExpenseDraft("Coffee", 150, "Food", "2024-03-01"))

    april = session.switch_period("2024-04")
    assert len(april) == 0
    assert session.period_key == "2024-04"

    march = session.switch_period("2024-03")
    assert len(march) == 1


@pytest.mark.asyncio
async def test_reset_period():
    manager, _, store, _, _ = await signed_in_manager()
    session = manager.session
    await session.add_expense(ExpenseDraft("Coffee", 150, "Food", "2024-03-01"))
    await session.add_expense(ExpenseDraft("Bus", 40, "Transport", "2024-03-02"))

    period = await session.reset_period(date(2024, 3, 15))

    assert len(session.ledger) == 0
    assert store.count(session.user.uid, "2024-03") == 0
    assert period.start_date == date(2024, 3, 15)
    assert period.duration_days == 30
    saved = await store.get_user_settings(session.user.uid)
    assert saved.period == period


@pytest.mark.asyncio
async def test_update_budget():
    manager, _, store, _, _ = await signed_in_manager()
    session = manager.session

    with pytest.raises(ValidationError):
        await session.update_budget(45, 10000)
    assert session.period.duration_days == 30

    period = await session.update_budget(14, "5000")
    assert period.budget_amount == Decimal(5000)
    assert period.start_date == date(2024, 3, 1)
    assert (await store.get_user_settings(session.user.uid)).period == period


@pytest.mark.asyncio
async def test_sign_out_clears_local_state_only():
    manager, identity, store, _, statuses = await signed_in_manager()
    session = manager.session
    await session.add_expense(ExpenseDraft("Coffee", 150, "Food", "2024-03-01"))

    await manager.sign_out()

    assert manager.status is SessionStatus.SIGNED_OUT
    assert manager.session is None
    assert session.closed
    assert len(session.ledger) == 0
    assert store.count(session.user.uid, "2024-03") == 1
    assert await identity.current_user() is None
    assert statuses[-1] is SessionStatus.SIGNED_OUT


@pytest.mark.asyncio
async def test_idle_timeout_signs_out():
    manager, identity, _, clock, _ = await signed_in_manager()
    session = manager.session

    clock.advance(minutes=29)
    assert await manager.check_idle() is False

    manager.record_activity()
    clock.advance(minutes=29)
    assert await manager.check_idle() is False

    clock.advance(minutes=2)
    assert await manager.check_idle() is True
    assert manager.status is SessionStatus.SIGNED_OUT
    assert session.closed
    assert await identity.current_user() is None


@pytest.mark.asyncio
async def test_signed_out_manager_is_never_idle():
    manager, _, _, clock, _ = make_manager()
    await manager.start()
    clock.advance(hours=5)
    assert await manager.check_idle() is False


@pytest.mark.asyncio
async def test_shutdown_stops_listening():
    manager, identity, _, _, _ = await signed_in_manager()
    await manager.shutdown()
    assert manager.session is None

    await identity.sign_in("asha@example.com", "secret1")
    assert manager.session is None


@pytest.mark.asyncio
async def test_configured_idle_timeout_applies_to_stored_settings():
    clock = FakeClock(datetime(2024, 3, 1, 9, 0))
    identity = InMemoryIdentityProvider(clock=clock)
    store = InMemoryDocumentStore()
    user = identity.add_account("asha@example.com", "secret1", "Asha")
    await store.set_user_settings(user.uid, UserSettings(period=Period(date(2024, 3, 1))))
    manager = SessionManager(identity, store, clock=clock, idle_timeout_minutes=5)
    await manager.start()
    await manager.sign_in("asha@example.com", "secret1")

    assert manager.session.settings.idle_timeout_minutes == 5
    clock.advance(minutes=4)
    assert await manager.check_idle() is False
    clock.advance(minutes=6)
    assert await manager.check_idle() is True
    assert manager.status is SessionStatus.SIGNED_OUT


@pytest.mark.asyncio
async def test_reload_restores_signed_in_user_from_shared_gateway():
    clock = FakeClock(datetime(2024, 3, 1, 9, 0))
    identity, store = build_gateway(clock=clock)
    first = SessionManager(identity, store, clock=clock)
    await first.start()
    await first.sign_up("Asha", "asha@example.com", "secret1", "secret1")
    await first.session.add_expense(ExpenseDraft("Coffee", 150, "Food", "2024-03-01"))
    await first.shutdown()

    second = SessionManager(identity, store, clock=clock)
    state = await second.start()

    assert state.status is SessionStatus.SIGNED_IN
    assert state.user.email == "asha@example.com"
    assert len(second.session.ledger) == 1
