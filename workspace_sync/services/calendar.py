import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import NotAuthenticatedError, StoreError
from ..schemas.calendar import EVENT_UPDATABLE_FIELDS, CalendarEvent
from ..utils.timestamps import from_iso, now_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)


def _short_time(value: Optional[str]) -> Optional[str]:
    # TIME columns come back as HH:MM:SS.
    if not value:
        return None
    return str(value)[:5]


def event_from_row(row: Dict[str, Any]) -> CalendarEvent:
    created_at = from_iso(row.get("created_at"))
    event_time = _short_time(row.get("event_time"))
    return CalendarEvent(
        id=row["id"],
        title=row.get("title") or "",
        description=row.get("description"),
        event_date=str(row["event_date"])[:10],
        event_time=event_time,
        is_all_day=bool(row.get("is_all_day", event_time is None)),
        category=row.get("category") or "general",
        created_at=created_at,
        updated_at=from_iso(row.get("updated_at"), default=created_at),
    )


def event_to_row(event: CalendarEvent, user_id: str) -> Dict[str, Any]:
    return {
        "id": event.id,
        "user_id": user_id,
        "title": event.title,
        "description": event.description,
        "event_date": event.event_date,
        "event_time": event.event_time,
        "is_all_day": event.is_all_day,
        "category": event.category,
    }


class CalendarService(StoreBackedService):
    table = "calendar_events"

    async def get_all(self) -> List[CalendarEvent]:
        try:
            rows = await self._store.select(self.table, match=self._owned(), order="event_date")
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("select", error)
            return []
        events: List[CalendarEvent] = []
        for row in rows:
            try:
                events.append(event_from_row(row))
            except (KeyError, ValidationError) as error:
                logger.warning("Skipping unreadable calendar row %s: %s", row.get("id"), error)
        return events

    async def create(self, event: CalendarEvent) -> Optional[CalendarEvent]:
        try:
            row = await self._store.insert(self.table, event_to_row(event, self._user_id()))
            return event_from_row(row)
        except (StoreError, NotAuthenticatedError, ValidationError) as error:
            self._log_failure("insert", error)
            return None

    async def update(self, event_id: str, **fields: Any) -> bool:
        unknown = set(fields) - set(EVENT_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown event fields: {', '.join(sorted(unknown))}")
        try:
            rows = await self._store.update(self.table, {**fields, "updated_at": now_iso()}, match=self._owned(id=event_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("update", error)
            return False
        return bool(rows)

    async def delete(self, event_id: str) -> bool:
        try:
            await self._store.delete(self.table, match=self._owned(id=event_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("delete", error)
            return False
        return True
