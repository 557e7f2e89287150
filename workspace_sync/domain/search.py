from typing import Any, Dict, List, Optional

from ..schemas.calendar import CalendarEvent
from ..schemas.pages import Page
from ..schemas.tasks import DailyTask

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


def page_matches(page: Page, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    if needle in page.title.lower() or needle in page.content.lower():
        return True
    return any(needle in block.content.lower() for block in page.blocks)


def search_pages(pages: Dict[str, Page], query: str) -> List[str]:
    needle = query.strip()
    if not needle:
        return []
    matches = [page for page in pages.values() if page_matches(page, needle)]
    return [page.id for page in sorted(matches, key=lambda page: page.updated_at, reverse=True)]


def page_tree(pages: Dict[str, Page], root_pages: List[str], query: str = "") -> List[Dict[str, Any]]:
    """Nested view of the forest; with a query, keeps matches and their ancestors."""

    def _node(page_id: str) -> Optional[Dict[str, Any]]:
        page = pages.get(page_id)
        if page is None:
            return None
        children = [node for node in (_node(child) for child in page.children) if node]
        if query and not children and not page_matches(page, query):
            return None
        return {"id": page.id, "title": page.title, "icon": page.icon, "is_expanded": page.is_expanded, "children": children}

    return [node for node in (_node(root) for root in root_pages) if node]


def tasks_by_priority(tasks: Dict[str, DailyTask], priority: Optional[str] = None) -> List[DailyTask]:
    selected = [task for task in tasks.values() if priority is None or task.priority == priority]
    return sorted(selected, key=lambda task: (task.completed, PRIORITY_RANK.get(task.priority, 3), task.created_at))


def task_summary(tasks: Dict[str, DailyTask]) -> Dict[str, Any]:
    total = len(tasks)
    completed = [task for task in tasks.values() if task.completed]
    planned = sum(task.time_allocation for task in tasks.values())
    done = sum(task.time_allocation for task in completed)
    return {
        "total": total,
        "completed": len(completed),
        "ratio": len(completed) / total if total else 0,
        "minutes_planned": planned,
        "minutes_completed": done,
        "categories": sorted({task.category for task in tasks.values()}),
    }


def events_on(events: Dict[str, CalendarEvent], event_date: str) -> List[CalendarEvent]:
    matches = [event for event in events.values() if event.event_date == event_date]
    return sorted(matches, key=lambda event: (not event.is_all_day, event.event_time or ""))
