from typing import Optional

from pydantic import BaseModel, Field


class CalendarEvent(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    event_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    event_time: Optional[str] = Field(default=None, pattern=r"^\d{2}:\d{2}$")
    is_all_day: bool = False
    category: str = "general"
    created_at: int
    updated_at: int


EVENT_UPDATABLE_FIELDS = ("title", "description", "event_date", "event_time", "is_all_day", "category")
