"""
Health Lab persistence: protocols and quit habits are one row each, settings one row
per user. Milestone progress is derived from ``quit_date`` at read time, so any
``isReached``/``reachedAt`` keys left in stored milestone JSON are dropped here.
"""

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from ..domain.defaults import default_health_settings
from ..errors import NotAuthenticatedError, StoreError
from ..schemas.health import HealthData, HealthProtocol, HealthSettings, QuitHabit, QuitMilestone
from ..utils.timestamps import from_iso, now_iso, to_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)

_MILESTONE_KEYS = ("id", "days", "title", "description")


def protocol_from_row(row: Dict[str, Any]) -> HealthProtocol:
    created_at = from_iso(row.get("created_at"))
    completed_at = row.get("completed_at")
    return HealthProtocol(
        id=row["id"],
        title=row.get("title") or "",
        description=row.get("description") or "",
        content=row.get("content") or "",
        category=row.get("category") or "other",
        is_expanded=bool(row.get("is_expanded")),
        is_completed=bool(row.get("is_completed")),
        completed_at=from_iso(completed_at) if completed_at else None,
        created_at=created_at,
        updated_at=from_iso(row.get("updated_at"), default=created_at),
    )


def protocol_to_row(protocol: HealthProtocol, user_id: str) -> Dict[str, Any]:
    return {
        "id": protocol.id,
        "user_id": user_id,
        "title": protocol.title,
        "description": protocol.description,
        "content": protocol.content,
        "category": protocol.category,
        "is_expanded": protocol.is_expanded,
        "is_completed": protocol.is_completed,
        "completed_at": to_iso(protocol.completed_at) if protocol.completed_at else None,
        "updated_at": now_iso(),
    }


def _milestones_from_json(raw: Any) -> List[QuitMilestone]:
    milestones = []
    for item in raw or []:
        if isinstance(item, dict):
            milestones.append(QuitMilestone(**{key: item[key] for key in _MILESTONE_KEYS if key in item}))
    return milestones


def habit_from_row(row: Dict[str, Any]) -> QuitHabit:
    created_at = from_iso(row.get("created_at"))
    return QuitHabit(
        id=row["id"],
        name=row.get("name") or "",
        description=row.get("description"),
        quit_date=from_iso(row.get("quit_date"), default=created_at),
        category=row.get("category") or "other",
        custom_category=row.get("custom_category"),
        is_active=row.get("is_active", True) is not False,
        milestones=_milestones_from_json(row.get("milestones")),
        created_at=created_at,
        updated_at=from_iso(row.get("updated_at"), default=created_at),
    )


def habit_to_row(habit: QuitHabit, user_id: str) -> Dict[str, Any]:
    return {
        "id": habit.id,
        "user_id": user_id,
        "name": habit.name,
        "description": habit.description,
        "quit_date": to_iso(habit.quit_date),
        "category": habit.category,
        "custom_category": habit.custom_category,
        "is_active": habit.is_active,
        "milestones": [milestone.model_dump() for milestone in habit.milestones],
        "updated_at": now_iso(),
    }


def settings_from_row(row: Dict[str, Any]) -> HealthSettings:
    defaults = default_health_settings()
    checkin = row.get("daily_checkin_time")
    return HealthSettings(
        reminder_enabled=row.get("reminder_enabled", defaults.reminder_enabled) is not False,
        daily_checkin_time=str(checkin)[:5] if checkin else defaults.daily_checkin_time,
        weekly_review_day=row.get("weekly_review_day", defaults.weekly_review_day) or 0,
        notification_enabled=row.get("notification_enabled", defaults.notification_enabled) is not False,
    )


class HealthService(StoreBackedService):
    table = "health_protocols"
    habits_table = "quit_habits"
    settings_table = "health_settings"

    async def _rows(self, table: str) -> List[Dict[str, Any]]:
        try:
            return await self._store.select(table, match=self._owned(), order="created_at")
        except (StoreError, NotAuthenticatedError) as error:
            logger.error("select on %s failed, using empty collection: %s", table, error)
            return []

    async def get(self) -> HealthData:
        protocols: Dict[str, HealthProtocol] = {}
        for row in await self._rows(self.table):
            try:
                protocol = protocol_from_row(row)
            except (KeyError, ValidationError) as error:
                logger.warning("Skipping unreadable protocol row %s: %s", row.get("id"), error)
                continue
            protocols[protocol.id] = protocol

        habits: Dict[str, QuitHabit] = {}
        for row in await self._rows(self.habits_table):
            try:
                habit = habit_from_row(row)
            except (KeyError, ValidationError) as error:
                logger.warning("Skipping unreadable quit habit row %s: %s", row.get("id"), error)
                continue
            habits[habit.id] = habit

        return HealthData(protocols=protocols, quit_habits=habits, settings=await self.get_settings())

    async def get_settings(self) -> HealthSettings:
        try:
            row = await self._store.select_one(self.settings_table, match=self._owned())
        except (StoreError, NotAuthenticatedError) as error:
            logger.error("select on %s failed, using defaults: %s", self.settings_table, error)
            return default_health_settings()
        if row is None:
            return default_health_settings()
        try:
            return settings_from_row(row)
        except ValidationError as error:
            logger.warning("Stored health settings are unreadable, using defaults: %s", error)
            return default_health_settings()

    async def _upsert(self, table: str, row_builder: Any, record: Any, on_conflict: str) -> bool:
        try:
            await self._store.upsert(table, row_builder(record, self._user_id()), on_conflict=on_conflict)
        except (StoreError, NotAuthenticatedError) as error:
            logger.error("upsert on %s failed: %s", table, error)
            return False
        return True

    async def _delete(self, table: str, record_id: str) -> bool:
        try:
            await self._store.delete(table, match=self._owned(id=record_id))
        except (StoreError, NotAuthenticatedError) as error:
            logger.error("delete on %s failed: %s", table, error)
            return False
        return True

    async def save_protocol(self, protocol: HealthProtocol) -> bool:
        return await self._upsert(self.table, protocol_to_row, protocol, "id")

    async def delete_protocol(self, protocol_id: str) -> bool:
        return await self._delete(self.table, protocol_id)

    async def save_quit_habit(self, habit: QuitHabit) -> bool:
        return await self._upsert(self.habits_table, habit_to_row, habit, "id")

    async def delete_quit_habit(self, habit_id: str) -> bool:
        return await self._delete(self.habits_table, habit_id)

    async def save_settings(self, settings: HealthSettings) -> bool:
        def _row(record: HealthSettings, user_id: str) -> Dict[str, Any]:
            return {"user_id": user_id, **record.model_dump(), "updated_at": now_iso()}

        return await self._upsert(self.settings_table, _row, settings, "user_id")
