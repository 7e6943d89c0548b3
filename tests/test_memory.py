import json
from datetime import date, datetime
from decimal import Decimal

import pytest

from studyspend.domain import Category, Expense
from studyspend.errors import SyncError
from studyspend.memory import InMemoryDocumentStore, InMemoryIdentityProvider, build_gateway, load_seed
from studyspend.period import Period, UserSettings

NOW = datetime(2024, 3, 1, 9, 0)


def make_pending(description="Coffee", amount=150, category=Category.FOOD):
    return Expense(
        description=description,
        amount=Decimal(str(amount)),
        category=category,
        date=date(2024, 3, 1),
        created_at=NOW,
    )


@pytest.mark.asyncio
async def test_sign_up_then_sign_in():
    identity = InMemoryIdentityProvider(clock=lambda: NOW)
    created = await identity.sign_up("Asha@Example.com", "secret1", "Asha")
    await identity.sign_out()

    user = await identity.sign_in("asha@example.com", "secret1")

    assert user.uid == created.uid
    assert user.email == "asha@example.com"
    assert user.display_name == "Asha"
    assert user.created_at == NOW
    assert await identity.current_user() == user


@pytest.mark.asyncio
async def test_sign_in_errors():
    identity = InMemoryIdentityProvider()
    identity.add_account("asha@example.com", "secret1", "Asha")

    with pytest.raises(SyncError) as exc:
        await identity.sign_in("asha@example.com", "nope")
    assert exc.value.code == "auth/wrong-password"

    with pytest.raises(SyncError) as exc:
        await identity.sign_in("ravi@example.com", "secret1")
    assert exc.value.code == "auth/user-not-found"

    with pytest.raises(SyncError) as exc:
        await identity.sign_in("not-an-email", "secret1")
    assert exc.value.code == "auth/invalid-email"


@pytest.mark.asyncio
async def test_sign_up_errors():
    identity = InMemoryIdentityProvider()
    identity.add_account("asha@example.com", "secret1")

    with pytest.raises(SyncError) as exc:
        await identity.sign_up("asha@example.com", "secret1", "Asha")
    assert exc.value.code == "auth/email-already-in-use"
    assert exc.value.user_message == "An account with this email already exists."

    with pytest.raises(SyncError) as exc:
        await identity.sign_up("ravi@example.com", "123", "Ravi")
    assert exc.value.code == "auth/weak-password"


@pytest.mark.asyncio
async def test_oauth():
    identity = InMemoryIdentityProvider()

    with pytest.raises(SyncError) as exc:
        await identity.sign_in_with_oauth("google")
    assert exc.value.code == "auth/operation-not-allowed"

    profile = identity.register_oauth_profile("google", "g@example.com", "G User", "https://img/g.png")
    identity.fail_next("auth/popup-closed-by-user")
    with pytest.raises(SyncError) as exc:
        await identity.sign_in_with_oauth("google")
    assert exc.value.suppressed

    assert await identity.sign_in_with_oauth("google") == profile


@pytest.mark.asyncio
async def test_auth_state_callbacks():
    identity = InMemoryIdentityProvider()
    seen = []

    async def on_change(user):
        seen.append(user.email if user else None)

    unsubscribe = identity.on_auth_state_change(on_change)
    await identity.sign_up("asha@example.com", "secret1", "Asha")
    await identity.sign_out()
    unsubscribe()
    await identity.sign_in("asha@example.com", "secret1")

    assert seen == ["asha@example.com", None]


def test_subscribe_delivers_current_snapshot():
    store = InMemoryDocumentStore()
    store.put("u1", "2024-03", make_pending().with_id("e1"))
    received = []

    store.subscribe("u1", "2024-03", received.append)

    assert len(received) == 1
    assert received[0].sequence == 0
    assert received[0].period_key == "2024-03"
    assert [r.id for r in received[0].records] == ["e1"]


@pytest.mark.asyncio
async def test_writes_push_snapshots_with_increasing_sequence():
    store = InMemoryDocumentStore()
    received = []
    store.subscribe("u1", "2024-03", received.append)

    new_id = await store.create("u1", "2024-03", make_pending())
    await store.delete_all("u1", "2024-03")

    assert [s.sequence for s in received] == [0, 1, 2]
    assert [r.id for r in received[1].records] == [new_id]
    assert received[2].records == ()


@pytest.mark.asyncio
async def test_partitions_are_isolated():
    store = InMemoryDocumentStore()
    march, other_user = [], []
    store.subscribe("u1", "2024-03", march.append)
    store.subscribe("u2", "2024-03", other_user.append)

    await store.create("u1", "2024-04", make_pending())

    assert len(march) == 1
    assert len(other_user) == 1
    assert store.count("u1", "2024-04") == 1
    assert store.count("u1", "2024-03") == 0


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    store = InMemoryDocumentStore()
    received = []
    sub = store.subscribe("u1", "2024-03", received.append)
    sub.unsubscribe()
    sub.unsubscribe()

    await store.create("u1", "2024-03", make_pending())

    assert len(received) == 1


@pytest.mark.asyncio
async def test_settings_and_failures():
    store = InMemoryDocumentStore()
    assert await store.get_user_settings("u1") is None

    settings = UserSettings(period=Period(date(2024, 3, 1), 14, Decimal(3000)))
    await store.set_user_settings("u1", settings)
    assert await store.get_user_settings("u1") == settings

    store.fail_next("permission-denied")
    with pytest.raises(SyncError) as exc:
        await store.create("u1", "2024-03", make_pending())
    assert exc.value.user_message == "You do not have permission to do that."
    assert store.count("u1", "2024-03") == 0


@pytest.mark.asyncio
async def test_load_seed(tmp_path):
    seed = {
        "accounts": [
            {
                "uid": "demo",
                "email": "demo@example.com",
                "password": "demo1234",
                "display_name": "Demo",
                "budget": 5000,
                "duration_days": 14,
                "start_date": "2024-03-01",
                "expenses": [
                    {"description": "Coffee", "amount": "150", "category": "Food", "date": "2024-03-01"},
                    {"description": "Bus", "amount": "40", "category": "Transport", "date": "2024-04-02", "notes": "late"},
                    {"description": "", "amount": "-1", "category": "Nope", "date": "2024-03-01"},
                ],
            }
        ],
        "oauth_profiles": [{"provider": "google", "email": "g@example.com", "display_name": "G"}],
    }
    path = tmp_path / "seed.json"
    path.write_text(json.dumps(seed), encoding="utf-8")

    identity, store = load_seed(path, clock=lambda: NOW)

    user = await identity.sign_in("demo@example.com", "demo1234")
    assert user.uid == "demo"
    assert store.count("demo", "2024-03") == 1
    assert store.count("demo", "2024-04") == 1
    settings = await store.get_user_settings("demo")
    assert settings.period == Period(date(2024, 3, 1), 14, Decimal(5000))
    assert identity.oauth_providers == ("google",)
    google_user = await identity.sign_in_with_oauth("google")
    assert google_user.email == "g@example.com"


def test_build_gateway_without_seed_is_empty():
    identity, store = build_gateway(clock=lambda: NOW)
    assert isinstance(identity, InMemoryIdentityProvider)
    assert identity.oauth_providers == ()
    assert store.count("u1", "2024-03") == 0
