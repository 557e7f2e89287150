from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .calendar import CalendarEvent
from .finance import FinanceData
from .health import HealthData
from .pages import Page
from .tasks import DailyTask

Section = Literal["pages", "daily-tasks", "calendar", "finance", "health-lab"]


class WorkspaceState(BaseModel):
    pages: Dict[str, Page] = Field(default_factory=dict)
    root_pages: List[str] = Field(default_factory=list)
    current_page_id: Optional[str] = None
    current_section: Section = "pages"
    search_query: str = ""
    daily_tasks: Dict[str, DailyTask] = Field(default_factory=dict)
    calendar_events: Dict[str, CalendarEvent] = Field(default_factory=dict)
    finance_data: FinanceData = Field(default_factory=FinanceData)
    health_data: HealthData = Field(default_factory=HealthData)


class WorkspaceSummary(BaseModel):
    status: str
    error: Optional[str] = None
    user_id: Optional[str] = None
    pages: int
    root_pages: int
    daily_tasks: int
    calendar_events: int
    wallets: int
    transactions: int
    protocols: int
    quit_habits: int
