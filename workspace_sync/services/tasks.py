import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..errors import NotAuthenticatedError, StoreError
from ..schemas.tasks import TASK_UPDATABLE_FIELDS, DailyTask
from ..utils.timestamps import from_iso, now_iso
from .base import StoreBackedService

logger = logging.getLogger(__name__)


def task_from_row(row: Dict[str, Any]) -> DailyTask:
    created_at = from_iso(row.get("created_at"))
    priority = row.get("priority") or "medium"
    # The table also allows "urgent"; the workspace only knows three levels.
    if priority == "urgent":
        priority = "high"
    return DailyTask(
        id=row["id"],
        title=row.get("title") or "",
        description=row.get("description") or "",
        time_allocation=row.get("time_allocation") if row.get("time_allocation") is not None else 30,
        priority=priority,
        category=row.get("category") or "Personal",
        completed=bool(row.get("completed")),
        streak=max(0, int(row.get("streak") or 0)),
        created_at=created_at,
        updated_at=from_iso(row.get("updated_at"), default=created_at),
    )


def task_to_row(task: DailyTask, user_id: str) -> Dict[str, Any]:
    return {
        "id": task.id,
        "user_id": user_id,
        "title": task.title,
        "description": task.description,
        "time_allocation": task.time_allocation,
        "priority": task.priority,
        "category": task.category,
        "completed": task.completed,
        "streak": task.streak,
    }


class TasksService(StoreBackedService):
    table = "daily_tasks"

    async def get_all(self) -> List[DailyTask]:
        try:
            rows = await self._store.select(self.table, match=self._owned(), order="created_at", ascending=False)
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("select", error)
            return []
        tasks: List[DailyTask] = []
        for row in rows:
            try:
                tasks.append(task_from_row(row))
            except (KeyError, ValidationError) as error:
                logger.warning("Skipping unreadable task row %s: %s", row.get("id"), error)
        return tasks

    async def create(self, task: DailyTask) -> Optional[DailyTask]:
        try:
            row = await self._store.insert(self.table, task_to_row(task, self._user_id()))
            return task_from_row(row)
        except (StoreError, NotAuthenticatedError, ValidationError) as error:
            self._log_failure("insert", error)
            return None

    async def _patch(self, task_id: str, values: Dict[str, Any]) -> bool:
        values = {**values, "updated_at": now_iso()}
        try:
            rows = await self._store.update(self.table, values, match=self._owned(id=task_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("update", error)
            return False
        if not rows:
            logger.error("Update on daily_tasks matched no row for %s", task_id)
            return False
        return True

    async def update(self, task_id: str, **fields: Any) -> bool:
        unknown = set(fields) - set(TASK_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated directly: {', '.join(sorted(unknown))}")
        return await self._patch(task_id, fields)

    async def set_completion(self, task_id: str, completed: bool, streak: int) -> bool:
        return await self._patch(task_id, {"completed": completed, "streak": streak})

    async def delete(self, task_id: str) -> bool:
        try:
            await self._store.delete(self.table, match=self._owned(id=task_id))
        except (StoreError, NotAuthenticatedError) as error:
            self._log_failure("delete", error)
            return False
        return True
