"""
HomeHarmony — UI-Agnostic Household Service.

Orchestrates everything a front end can ask for: member administration,
chore creation with fair assignment, completion and recurrence,
redistribution, inventory, and the dashboard.

The pure core (workload, recurrence, members, inventory, dashboard) works
on snapshots; this layer reads snapshots from the stores, runs the core,
and writes back only what changed. Household errors propagate to the
caller untouched.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import fields, replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from src.core import members as member_rules
from src.core.dashboard import DashboardSummary, build_dashboard
from src.core.errors import InvalidState, NotFound, ValidationError
from src.core.inventory import adjust_quantity, validate_item_fields
from src.core.recurrence import toggle_completion
from src.core.workload import least_loaded_member, redistribute
from src.data.models import MAX_WEIGHT, MIN_WEIGHT, PRIORITIES, Item, Member, Task

if TYPE_CHECKING:
    from src.core.recurrence import RecurrenceScheduler
    from src.ports.auth_port import Authenticator
    from src.ports.store_port import ItemStore, MemberStore, TaskStore

logger = logging.getLogger(__name__)

_TASK_FIELDS = {f.name for f in fields(Task)} - {"id"}
_ITEM_FIELDS = {"name", "quantity", "min_quantity", "unit"}


def validate_task(task: Task) -> Task:
    """Check name, priority, weight and duration; returns the task with a stripped name."""
    name = task.name.strip()
    if not name:
        raise ValidationError("Task name is required")
    if task.priority not in PRIORITIES:
        raise ValidationError(
            f"Priority must be one of {', '.join(PRIORITIES)} (got {task.priority!r})"
        )
    if (
        isinstance(task.weight, bool)
        or not isinstance(task.weight, int)
        or not MIN_WEIGHT <= task.weight <= MAX_WEIGHT
    ):
        raise ValidationError(
            f"Weight must be a whole number {MIN_WEIGHT}-{MAX_WEIGHT} (got {task.weight!r})"
        )
    if task.duration_days < 1:
        raise ValidationError(
            f"Duration must be at least 1 day (got {task.duration_days})"
        )
    return replace(task, name=name)


class HouseholdService:
    """Stateless service over the member/task/item stores.

    Args:
        member_store, task_store, item_store: persistence collaborators.
        scheduler: RecurrenceScheduler owning the follow-up ledger. The
            ledger stores follow-ups in ``task_store`` as it claims them
            (FollowUpDB over the same TaskDB, or
            InMemoryFollowUpLedger(task_store)).
        authenticator: credential check used by ``login``.
        clock: returns "now"; injectable for tests.
        id_factory: returns fresh ids for new members, tasks and items.
        new_task_due_days: due date offset for newly created tasks.
        orphan_policy: "reassign" | "block" | "leave" for a removed
            member's open tasks.
    """

    def __init__(
        self,
        member_store: MemberStore,
        task_store: TaskStore,
        item_store: ItemStore,
        scheduler: RecurrenceScheduler,
        authenticator: Authenticator | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
        new_task_due_days: int = 7,
        orphan_policy: str = "reassign",
    ) -> None:
        self._members = member_store
        self._tasks = task_store
        self._items = item_store
        self._scheduler = scheduler
        self._authenticator = authenticator
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._new_task_due_days = new_task_due_days
        self._orphan_policy = orphan_policy

    def now(self) -> datetime:
        return self._clock()

    def _new_id(self, taken: set[str]) -> str:
        new_id = self._id_factory()
        if new_id in taken:
            raise InvalidState(f"Id generator returned an existing id: {new_id}")
        return new_id

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def login(self, name: str, secret: str) -> Member | None:
        """Return the member matching the credentials, or None."""
        if self._authenticator is None:
            raise InvalidState("No authenticator configured")
        return self._authenticator.authenticate(name, secret)

    def list_members(self) -> list[Member]:
        return self._members.list_members()

    def get_member(self, member_id: str) -> Member:
        member = self._members.get_member(member_id)
        if member is None:
            raise NotFound(f"Member {member_id} not found")
        return member

    def add_member(
        self,
        name: str,
        avatar: str = "👤",
        color: str = "blue",
        password: str = "",
    ) -> Member:
        """Add a member. The first member of an empty household becomes admin."""
        name = member_rules.validate_member_name(name)
        existing = self._members.list_members()
        member = Member(
            id=self._new_id({m.id for m in existing}),
            name=name,
            avatar=avatar,
            color=color,
            is_admin=not existing,
        )
        return self._members.add_member(member, password=password)

    def change_password(self, member_id: str, password: str) -> None:
        if not password.strip():
            raise ValidationError("Password cannot be empty")
        self.get_member(member_id)
        self._members.set_password(member_id, password)

    def toggle_admin(self, member_id: str, acting_member_id: str) -> Member:
        updated = member_rules.toggle_admin(
            self._members.list_members(), member_id, acting_member_id,
        )
        target = member_rules.find_member(updated, member_id)
        self._members.update_member(target)
        logger.info(
            "Member %s admin=%s (by %s)", member_id, target.is_admin, acting_member_id,
        )
        return target

    def remove_member(self, member_id: str, acting_member_id: str) -> list[Task]:
        """Remove a member and apply the orphaned-task policy.

        Returns the tasks that were reassigned (empty unless the policy is
        "reassign").
        """
        current = self._members.list_members()
        remaining = member_rules.remove_member(current, member_id, acting_member_id)

        tasks = self._tasks.list_tasks()
        orphaned = [t for t in tasks if t.assigned_to == member_id and not t.completed]

        if orphaned and self._orphan_policy == "block":
            raise InvalidState(
                f"Member still has {len(orphaned)} open task(s); reassign them first"
            )

        reassigned: list[Task] = []
        if orphaned and self._orphan_policy == "reassign":
            snapshot = [t for t in tasks if t.assigned_to != member_id or t.completed]
            for task in orphaned:
                moved = replace(task, assigned_to=least_loaded_member(remaining, snapshot))
                snapshot.append(moved)
                reassigned.append(moved)

        # Tasks move first so a failed update leaves the member in place.
        for task in reassigned:
            self._tasks.update_task(task)
        self._members.delete_member(member_id)

        logger.info(
            "Member %s removed by %s (%d open tasks, policy=%s)",
            member_id, acting_member_id, len(orphaned), self._orphan_policy,
        )
        return reassigned

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def list_tasks(self) -> list[Task]:
        return self._tasks.list_tasks()

    def get_task(self, task_id: str) -> Task:
        task = self._tasks.get_task(task_id)
        if task is not None:
            return task
        raise NotFound(f"Task {task_id} not found")

    def add_task(
        self,
        name: str,
        description: str = "",
        schedule: str = "",
        priority: str = "medium",
        duration_days: int = 7,
        weight: int = 2,
    ) -> Task:
        """Create a task and give it to the least-loaded member."""
        tasks = self._tasks.list_tasks()
        assignee = least_loaded_member(self._members.list_members(), tasks)
        task = validate_task(Task(
            id=self._new_id({t.id for t in tasks}),
            name=name,
            description=description.strip(),
            assigned_to=assignee,
            schedule=schedule.strip(),
            priority=priority,
            duration_days=duration_days,
            completed=False,
            due_date=self.now() + timedelta(days=self._new_task_due_days),
            weight=weight,
        ))
        return self._tasks.add_task(task)

    def edit_task(self, task_id: str, **changes: Any) -> Task:
        """Apply manual edits to any task field except the id."""
        unknown = set(changes) - _TASK_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        assignee = changes.get("assigned_to")
        if assignee is not None:
            self.get_member(assignee)

        task = validate_task(replace(self.get_task(task_id), **changes))
        return self._tasks.update_task(task)

    def toggle_task(self, task_id: str) -> Task:
        """Mark a task done (stamping the completion time) or undo it."""
        task = toggle_completion(self.get_task(task_id), self.now())
        self._tasks.update_task(task)
        logger.info("Task %s '%s' completed=%s", task.id, task.name, task.completed)
        return task

    def delete_task(self, task_id: str) -> bool:
        return self._tasks.delete_task(task_id)

    def redistribute_tasks(self) -> list[Task]:
        """Re-run fair assignment over every open task.

        Returns the tasks whose assignee changed.
        """
        tasks = self._tasks.list_tasks()
        balanced = redistribute(self._members.list_members(), tasks)
        changed = [
            new for old, new in zip(tasks, balanced)
            if new.assigned_to != old.assigned_to
        ]
        for task in changed:
            self._tasks.update_task(task)
        logger.info("Redistribution moved %d of %d tasks", len(changed), len(tasks))
        return changed

    def run_follow_ups(self) -> list[Task]:
        """Materialize every recurring follow-up due now.

        The scheduler's ledger stores each follow-up together with its
        claim, so a failed write leaves that source pending for the next run.
        """
        return self._scheduler.due_follow_ups(
            self._tasks.list_tasks(), self._members.list_members(), self.now(),
        )

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def list_items(self) -> list[Item]:
        return self._items.list_items()

    def get_item(self, item_id: str) -> Item:
        item = self._items.get_item(item_id)
        if item is not None:
            return item
        raise NotFound(f"Item {item_id} not found")

    def add_item(
        self, name: str, quantity: int, min_quantity: int = 1, unit: str = "",
    ) -> Item:
        name = validate_item_fields(name, quantity, min_quantity)
        existing = {i.id for i in self._items.list_items()}
        item = Item(
            id=self._new_id(existing),
            name=name,
            quantity=quantity,
            min_quantity=min_quantity,
            unit=unit.strip(),
        )
        return self._items.add_item(item)

    def adjust_item(self, item_id: str, change: int) -> Item:
        """Add or use up stock; quantity never goes below zero."""
        item = adjust_quantity(self.get_item(item_id), change)
        return self._items.update_item(item)

    def update_item(self, item_id: str, **changes: Any) -> Item:
        unknown = set(changes) - _ITEM_FIELDS
        if unknown:
            raise ValidationError(f"Unknown item field(s): {', '.join(sorted(unknown))}")
        item = replace(self.get_item(item_id), **changes)
        item = replace(
            item, name=validate_item_fields(item.name, item.quantity, item.min_quantity),
        )
        return self._items.update_item(item)

    def delete_item(self, item_id: str) -> bool:
        return self._items.delete_item(item_id)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def dashboard(self) -> DashboardSummary:
        return build_dashboard(
            self._members.list_members(),
            self._tasks.list_tasks(),
            self._items.list_items(),
            self.now(),
        )
