from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ProtocolCategory = Literal["fitness", "nutrition", "sleep", "mental", "habits", "other"]
HabitCategory = Literal["smoking", "alcohol", "sugar", "social_media", "caffeine", "other"]


class HealthProtocol(BaseModel):
    id: str
    title: str
    description: str = ""
    content: str = ""
    category: ProtocolCategory = "other"
    is_expanded: bool = False
    is_completed: bool = False
    completed_at: Optional[int] = None
    created_at: int
    updated_at: int


class QuitMilestone(BaseModel):
    # No "reached" flag here on purpose: see domain.milestones.
    id: str
    days: int = Field(..., ge=0)
    title: str
    description: str = ""


class QuitHabit(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    quit_date: int
    category: HabitCategory = "other"
    custom_category: Optional[str] = None
    is_active: bool = True
    milestones: List[QuitMilestone] = Field(default_factory=list)
    created_at: int
    updated_at: int


class HealthSettings(BaseModel):
    reminder_enabled: bool = True
    daily_checkin_time: Optional[str] = "09:00"
    weekly_review_day: int = Field(default=0, ge=0, le=6)
    notification_enabled: bool = True


class HealthData(BaseModel):
    protocols: Dict[str, HealthProtocol] = Field(default_factory=dict)
    quit_habits: Dict[str, QuitHabit] = Field(default_factory=dict)
    settings: HealthSettings = Field(default_factory=HealthSettings)


class MilestoneStatus(BaseModel):
    milestone: QuitMilestone
    reached: bool
    reached_at: int


class Elapsed(BaseModel):
    days: int
    hours: int
    minutes: int
    seconds: int
