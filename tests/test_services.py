import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workspace_sync.schemas.finance import FinanceData  # noqa: E402
from workspace_sync.services.calendar import event_from_row  # noqa: E402
from workspace_sync.services.health import habit_from_row, settings_from_row  # noqa: E402
from workspace_sync.services.pages import page_from_row  # noqa: E402
from workspace_sync.services.tasks import task_from_row  # noqa: E402
from workspace_sync.utils.timestamps import from_iso  # noqa: E402


@pytest.fixture
def signed_in(auth):
    auth.sign_in_as("user-1", "ada@example.com", emit=False)
    return auth


def test_page_rows_fill_in_defaults():
    page = page_from_row(
        {
            "id": "p1",
            "title": None,
            "blocks": [{"id": "b1", "type": "text", "content": "hi", "order": 0}],
            "children": None,
            "created_at": "2026-01-02T03:04:05Z",
            "updated_at": None,
        }
    )
    assert page.title == "Untitled"
    assert page.icon == "document"
    assert page.children == []
    assert page.blocks[0].kind == "text"
    assert page.updated_at == page.created_at == from_iso("2026-01-02T03:04:05+00:00")


def test_timestamps_with_short_fractions_parse():
    assert from_iso("2026-01-15T10:30:00.12345+00:00", default=0) == from_iso("2026-01-15T10:30:00.123450+00:00")
    assert from_iso("2026-01-15T10:30:00.1Z", default=0) == from_iso("2026-01-15T10:30:00.100Z")
    assert from_iso("2026-01-15T10:30:00.1234567Z", default=0) == from_iso("2026-01-15T10:30:00.123456Z")
    assert from_iso("2026-01-15T10:30:00.5Z", default=0) - from_iso("2026-01-15T10:30:00Z") == 500
    assert from_iso("not a date", default=7) == 7


def test_urgent_priority_maps_to_high():
    task = task_from_row({"id": "t", "title": "Fire", "priority": "urgent", "streak": -3})
    assert task.priority == "high"
    assert task.streak == 0
    assert task.time_allocation == 30


def test_event_time_is_trimmed_to_minutes():
    event = event_from_row({"id": "e", "title": "Dentist", "event_date": "2026-05-01", "event_time": "14:30:00"})
    assert event.event_time == "14:30"
    assert event.is_all_day is False
    all_day = event_from_row({"id": "e2", "title": "Trip", "event_date": "2026-05-02T00:00:00"})
    assert all_day.event_date == "2026-05-02"
    assert all_day.is_all_day is True


def test_stored_milestone_flags_are_dropped():
    habit = habit_from_row(
        {
            "id": "h",
            "name": "Smoking",
            "quit_date": "2026-01-01T00:00:00Z",
            "category": "smoking",
            "milestones": [{"id": "m1", "days": 1, "title": "Day one", "isReached": True, "reachedAt": 5}],
        }
    )
    assert habit.milestones[0].model_dump() == {"id": "m1", "days": 1, "title": "Day one", "description": ""}


def test_health_settings_row_defaults():
    settings = settings_from_row({"daily_checkin_time": "08:15:00", "reminder_enabled": False})
    assert settings.daily_checkin_time == "08:15"
    assert settings.reminder_enabled is False
    assert settings.notification_enabled is True


@pytest.mark.asyncio
async def test_failed_select_returns_empty(services, signed_in, store):
    store.fail("pages", "select")
    assert await services.pages.get_all() == []


@pytest.mark.asyncio
async def test_queries_are_scoped_to_the_user(services, signed_in, store):
    store.seed(
        "pages",
        {"id": "mine", "user_id": "user-1", "title": "Mine"},
        {"id": "theirs", "user_id": "user-2", "title": "Theirs"},
    )
    assert [page.id for page in await services.pages.get_all()] == ["mine"]
    assert await services.pages.update("theirs", title="Hijack") is False
    assert store.tables["pages"]["theirs"]["title"] == "Theirs"


@pytest.mark.asyncio
async def test_unreadable_rows_are_skipped(services, signed_in, store):
    store.seed(
        "daily_tasks",
        {"id": "good", "user_id": "user-1", "title": "Fine"},
        {"id": "bad", "user_id": "user-1", "title": "Broken", "time_allocation": -5},
    )
    assert [task.id for task in await services.tasks.get_all()] == ["good"]


@pytest.mark.asyncio
async def test_services_require_a_user(services, store):
    assert await services.pages.get_all() == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_page_update_rejects_unknown_fields(services, signed_in):
    with pytest.raises(ValueError):
        await services.pages.update("p1", user_id="user-2")


@pytest.mark.asyncio
async def test_task_update_rejects_streak(services, signed_in):
    with pytest.raises(ValueError):
        await services.tasks.update("t1", streak=4)


@pytest.mark.asyncio
async def test_finance_defaults_are_created_once(services, signed_in, store):
    first = await services.finance.get()
    assert "user-1" in store.tables["finance_data"]
    upserts = [call for call in store.calls if call[1] == "upsert"]
    second = await services.finance.get()
    assert second == first
    assert [call for call in store.calls if call[1] == "upsert"] == upserts


@pytest.mark.asyncio
async def test_unreadable_finance_data_falls_back_to_defaults(services, signed_in, store):
    store.seed("finance_data", {"user_id": "user-1", "data": {"wallets": {"w": {"name": "no id"}}}})
    finance = await services.finance.get()
    assert isinstance(finance, FinanceData)
    assert finance.wallets == {}


@pytest.mark.asyncio
async def test_ensure_profile_creates_once(services, signed_in, store):
    created = await services.profiles.ensure("user-1", "ada@example.com")
    assert created["username"] == "ada"
    again = await services.profiles.ensure("user-1", "ada@example.com")
    assert again["id"] == "user-1"
    assert len(store.rows("profiles")) == 1

    updated = await services.profiles.update("user-1", username="lovelace")
    assert updated["username"] == "lovelace"
