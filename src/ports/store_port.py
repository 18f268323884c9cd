"""Store ports — abstract interfaces for household persistence.

Core modules depend on these protocols, never on a specific backend.
Stores enforce no household rules; callers check invariants first.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Item, Member, Task


class MemberStore(Protocol):
    """Members keyed by id."""

    def list_members(self) -> list[Member]: ...

    def get_member(self, member_id: str) -> Member | None: ...

    def add_member(self, member: Member, password: str = "") -> Member: ...

    def update_member(self, member: Member) -> Member: ...

    def set_password(self, member_id: str, password: str) -> None: ...

    def delete_member(self, member_id: str) -> bool: ...


class TaskStore(Protocol):
    """Tasks keyed by id."""

    def list_tasks(self) -> list[Task]: ...

    def get_task(self, task_id: str) -> Task | None: ...

    def add_task(self, task: Task) -> Task: ...

    def update_task(self, task: Task) -> Task: ...

    def delete_task(self, task_id: str) -> bool: ...


class ItemStore(Protocol):
    """Inventory items keyed by id."""

    def list_items(self) -> list[Item]: ...

    def get_item(self, item_id: str) -> Item | None: ...

    def add_item(self, item: Item) -> Item: ...

    def update_item(self, item: Item) -> Item: ...

    def delete_item(self, item_id: str) -> bool: ...


class FollowUpLedger(Protocol):
    """Record of completed tasks whose follow-up has been materialized."""

    def is_materialized(self, source_task_id: str) -> bool: ...

    def claim(self, source_task_id: str, follow_up: Task) -> bool:
        """Atomically mark a source as materialized with ``follow_up``.

        Returns False when another caller already claimed it. A ledger that
        persists follow-ups stores ``follow_up`` in the same step, and if
        that fails the source is left unclaimed.
        """
        ...
