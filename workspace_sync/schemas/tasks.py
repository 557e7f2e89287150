from typing import Literal

from pydantic import BaseModel, Field

Priority = Literal["high", "medium", "low"]


class DailyTask(BaseModel):
    id: str
    title: str
    description: str = ""
    time_allocation: int = Field(default=30, ge=0, description="Minutes set aside for the task")
    priority: Priority = "medium"
    category: str = "Personal"
    completed: bool = False
    streak: int = Field(default=0, ge=0)
    created_at: int
    updated_at: int


TASK_UPDATABLE_FIELDS = ("title", "description", "time_allocation", "priority", "category")
