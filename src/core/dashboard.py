"""
HomeHarmony — Dashboard aggregation.

Read-only summary of the household: how much work is done, what is
overdue, what is running out, and how the load is spread across members.
Tasks pointing at a member that no longer exists are counted in the
totals but not in any member's stats.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from src.core.inventory import low_stock_items

if TYPE_CHECKING:
    from src.data.models import Item, Member, Task


@dataclass
class MemberStats:
    """Per-member workload figures (all tasks, completed or not)."""

    member_id: str
    name: str
    total_tasks: int
    total_weight: int
    completed_weight: int
    completion_rate: float     # percent of weight completed, 0..100


@dataclass
class DashboardSummary:
    total_tasks: int
    completed_tasks: int
    completion_rate: float     # percent, 0..100
    overdue_tasks: list[Task] = field(default_factory=list)
    low_stock_items: list[Item] = field(default_factory=list)
    member_stats: list[MemberStats] = field(default_factory=list)


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def member_stats(members: Sequence[Member], tasks: Sequence[Task]) -> list[MemberStats]:
    stats = []
    for member in members:
        own = [t for t in tasks if t.assigned_to == member.id]
        total_weight = sum(t.weight for t in own)
        completed_weight = sum(t.weight for t in own if t.completed)
        stats.append(MemberStats(
            member_id=member.id,
            name=member.name,
            total_tasks=len(own),
            total_weight=total_weight,
            completed_weight=completed_weight,
            completion_rate=_percent(completed_weight, total_weight),
        ))
    return stats


def build_dashboard(
    members: Sequence[Member],
    tasks: Sequence[Task],
    items: Sequence[Item],
    now: datetime,
) -> DashboardSummary:
    """Aggregate members, tasks and items into a DashboardSummary."""
    completed = sum(1 for t in tasks if t.completed)
    overdue = [t for t in tasks if not t.completed and t.due_date < now]
    return DashboardSummary(
        total_tasks=len(tasks),
        completed_tasks=completed,
        completion_rate=_percent(completed, len(tasks)),
        overdue_tasks=overdue,
        low_stock_items=low_stock_items(items),
        member_stats=member_stats(members, tasks),
    )


def time_left_label(due: datetime, now: datetime) -> str:
    """Human-readable distance to ``due`` in whole calendar days.

    Days are counted in ``now``'s timezone.
    e.g. "2 days left", "Due tomorrow", "Due today", "Overdue by 3 days".
    """
    if now.tzinfo is not None:
        due = due.astimezone(now.tzinfo)
    diff = (due.date() - now.date()).days
    if diff > 1:
        return f"{diff} days left"
    if diff == 1:
        return "Due tomorrow"
    if diff == 0:
        return "Due today"
    if diff == -1:
        return "Overdue by 1 day"
    return f"Overdue by {abs(diff)} days"
