"""
HomeHarmony — Workload Balancer.

Picks the least-loaded member for a new task and greedily redistributes
all open tasks, heaviest first. A member's workload is the summed weight
of the incomplete tasks assigned to them.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Sequence

from src.core.errors import InvalidState

if TYPE_CHECKING:
    from src.data.models import Member, Task

logger = logging.getLogger(__name__)


def workload_by_member(
    members: Sequence[Member], tasks: Sequence[Task],
) -> dict[str, int]:
    """Return {member_id: summed weight of open tasks}, in member order."""
    loads = {m.id: 0 for m in members}
    for task in tasks:
        if task.completed or task.assigned_to not in loads:
            continue
        loads[task.assigned_to] += task.weight
    return loads


def _lightest(member_ids: list[str], loads: dict[str, int]) -> str:
    # Strict "<" keeps the first member on ties.
    best = member_ids[0]
    for member_id in member_ids[1:]:
        if loads[member_id] < loads[best]:
            best = member_id
    return best


def least_loaded_member(
    members: Sequence[Member], tasks: Sequence[Task],
) -> str:
    """Return the id of the member with the smallest workload.

    Ties go to the member that comes first in ``members``.

    Raises:
        InvalidState: if ``members`` is empty.
    """
    if not members:
        raise InvalidState("Cannot pick an assignee: household has no members")

    loads = workload_by_member(members, tasks)
    return _lightest([m.id for m in members], loads)


def redistribute(
    members: Sequence[Member], tasks: Sequence[Task],
) -> list[Task]:
    """Reassign every incomplete task, heaviest first, to the lightest member.

    Running workloads start at zero. Tasks of equal weight keep their
    relative order. Completed tasks come back untouched, and the returned
    list has the same length and order as ``tasks``.

    Raises:
        InvalidState: if ``members`` is empty.
    """
    if not members:
        raise InvalidState("Cannot redistribute tasks: household has no members")

    member_ids = [m.id for m in members]
    running = {member_id: 0 for member_id in member_ids}

    open_indexes = [i for i, t in enumerate(tasks) if not t.completed]
    open_indexes.sort(key=lambda i: tasks[i].weight, reverse=True)

    assignments: dict[int, str] = {}
    for i in open_indexes:
        target = _lightest(member_ids, running)
        running[target] += tasks[i].weight
        assignments[i] = target

    result = [
        replace(task, assigned_to=assignments[i]) if i in assignments else task
        for i, task in enumerate(tasks)
    ]
    logger.debug("Redistributed %d open tasks: %s", len(assignments), running)
    return result
