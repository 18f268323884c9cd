"""
HomeHarmony — Recurrence Scheduler.

Turns completed chores into their next instance. Each completed task moves
through three states:

    Active             task is not completed
    Completed-Pending  completed, follow-up not created yet
    Materialized       follow-up created; the source never fires again

A completed task fires once ``now`` reaches its fire threshold: the day
after its due date (the completion time) at a fixed time of day. The
follow-up goes to the next member in rotation, not to the least-loaded one.

Which sources already fired is kept in a FollowUpLedger so repeated
evaluation (every job tick, every refresh) never spawns duplicates. A
ledger that persists follow-ups stores each one together with its claim.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING, Callable, Sequence

from src.core.errors import InvalidState

if TYPE_CHECKING:
    from src.data.models import Member, Task
    from src.ports.store_port import FollowUpLedger, TaskStore

logger = logging.getLogger(__name__)

DEFAULT_FIRE_TIME = time(5, 0)
_MAX_ID_ATTEMPTS = 10


class InMemoryFollowUpLedger:
    """Process-local FollowUpLedger.

    Loses its state on restart; use the SQLite ledger when follow-ups must
    stay fire-once across restarts. With a ``task_store`` each claim also
    adds the follow-up there, and a failed add leaves the source unclaimed.
    """

    def __init__(self, task_store: TaskStore | None = None) -> None:
        self._claimed: dict[str, str] = {}
        self._lock = threading.Lock()
        self._task_store = task_store

    def is_materialized(self, source_task_id: str) -> bool:
        with self._lock:
            return source_task_id in self._claimed

    def claim(self, source_task_id: str, follow_up: Task) -> bool:
        with self._lock:
            if source_task_id in self._claimed:
                return False
            if self._task_store is not None:
                self._task_store.add_task(follow_up)
            self._claimed[source_task_id] = follow_up.id
            return True


def fire_threshold(
    due_date: datetime,
    fire_time: time = DEFAULT_FIRE_TIME,
    tz: tzinfo | None = None,
) -> datetime:
    """Return the moment a completed task's follow-up becomes due.

    The day after ``due_date`` at ``fire_time`` local time. Local means
    ``tz`` when given (a ZoneInfo keeps 05:00 right across DST changes),
    otherwise ``due_date``'s own timezone.
    """
    if tz is not None:
        due_date = due_date.astimezone(tz)
    next_day = due_date.date() + timedelta(days=1)
    return datetime.combine(next_day, fire_time, tzinfo=due_date.tzinfo)


def next_in_rotation(members: Sequence[Member], assignee_id: str | None) -> str:
    """Return the member after ``assignee_id`` in list order, wrapping.

    An assignee that is not in ``members`` (or None) restarts at the first
    member.

    Raises:
        InvalidState: if ``members`` is empty.
    """
    if not members:
        raise InvalidState("Cannot rotate: household has no members")

    ids = [m.id for m in members]
    if assignee_id not in ids:
        return ids[0]
    return ids[(ids.index(assignee_id) + 1) % len(ids)]


def toggle_completion(task: Task, now: datetime) -> Task:
    """Flip ``completed`` on a copy of ``task``.

    Completing stamps ``due_date`` with ``now``, which becomes the anchor
    for the next fire threshold. Un-completing leaves ``due_date`` alone.
    """
    if task.completed:
        return replace(task, completed=False)
    return replace(task, completed=True, due_date=now)


class RecurrenceScheduler:
    """Materializes follow-up tasks for completed chores, once per source."""

    def __init__(
        self,
        ledger: FollowUpLedger | None = None,
        id_factory: Callable[[], str] | None = None,
        fire_time: time = DEFAULT_FIRE_TIME,
        tz: tzinfo | None = None,
    ) -> None:
        self._ledger = ledger if ledger is not None else InMemoryFollowUpLedger()
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._fire_time = fire_time
        self._tz = tz

    def is_pending(self, task: Task) -> bool:
        """True while a completed task has not spawned its follow-up yet."""
        return task.completed and not self._ledger.is_materialized(task.id)

    def due_follow_ups(
        self,
        tasks: Sequence[Task],
        members: Sequence[Member],
        now: datetime,
    ) -> list[Task]:
        """Return the follow-ups that are due at ``now``.

        Every follow-up in the batch is built before any source is claimed,
        so a failure while building leaves the ledger untouched. Each claim
        then stands alone: if the ledger fails to store a follow-up, that
        source stays pending and the error propagates, while sources claimed
        before it keep their stored follow-ups. A source that another caller
        claims first is dropped from the result.

        Raises:
            InvalidState: if ``members`` is empty, or the id factory keeps
                returning ids that already exist.
        """
        if not members:
            raise InvalidState("Cannot assign follow-ups: household has no members")

        taken_ids = {t.id for t in tasks}
        candidates: list[tuple[str, Task]] = []
        for task in tasks:
            if not self.is_pending(task):
                continue
            threshold = fire_threshold(task.due_date, self._fire_time, self._tz)
            if now < threshold:
                continue

            new_id = self._fresh_id(taken_ids)
            taken_ids.add(new_id)
            follow_up = replace(
                task,
                id=new_id,
                assigned_to=next_in_rotation(members, task.assigned_to),
                completed=False,
                due_date=threshold + timedelta(days=task.duration_days),
            )
            candidates.append((task.id, follow_up))

        spawned: list[Task] = []
        for source_id, follow_up in candidates:
            if not self._ledger.claim(source_id, follow_up):
                logger.debug("Follow-up for task %s already materialized", source_id)
                continue
            spawned.append(follow_up)
            logger.info(
                "Follow-up %s for '%s' (from %s) assigned to %s, due %s",
                follow_up.id, follow_up.name, source_id,
                follow_up.assigned_to, follow_up.due_date.isoformat(),
            )
        return spawned

    def _fresh_id(self, taken_ids: set[str]) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate not in taken_ids:
                return candidate
        raise InvalidState("Id generator did not produce a fresh task id")
