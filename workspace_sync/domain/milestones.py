from typing import List, Optional

from ..schemas.health import Elapsed, MilestoneStatus, QuitHabit
from ..utils.strings import to_title_case
from ..utils.timestamps import DAY_MS, now_ms


def time_since(quit_date: int, now: Optional[int] = None) -> Elapsed:
    diff = (now if now is not None else now_ms()) - quit_date
    if diff < 0:
        return Elapsed(days=0, hours=0, minutes=0, seconds=0)
    days, remainder = divmod(diff, DAY_MS)
    hours, remainder = divmod(remainder, 60 * 60 * 1000)
    minutes, remainder = divmod(remainder, 60 * 1000)
    return Elapsed(days=days, hours=hours, minutes=minutes, seconds=remainder // 1000)


def milestone_statuses(habit: QuitHabit, now: Optional[int] = None) -> List[MilestoneStatus]:
    # Reached status is always derived from the clock, never read from storage.
    elapsed_days = time_since(habit.quit_date, now).days
    ordered = sorted(habit.milestones, key=lambda milestone: milestone.days)
    return [
        MilestoneStatus(
            milestone=milestone,
            reached=elapsed_days >= milestone.days,
            reached_at=habit.quit_date + milestone.days * DAY_MS,
        )
        for milestone in ordered
    ]


def next_milestone(habit: QuitHabit, now: Optional[int] = None) -> Optional[MilestoneStatus]:
    for status in milestone_statuses(habit, now):
        if not status.reached:
            return status
    return None


def display_category(habit: QuitHabit) -> str:
    if habit.category == "other" and habit.custom_category:
        return habit.custom_category
    return to_title_case(habit.category)
