"""
HomeHarmony — Data Models.

Members, tasks and inventory items are independent top-level collections.
Tasks point at members by id only; nothing here cascades.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

PRIORITIES = ("low", "medium", "high")
MIN_WEIGHT = 1
MAX_WEIGHT = 5


@dataclass
class Member:
    """A household member who can be assigned chores.

    The login secret lives in the member store only and is never
    carried on this record.
    """

    id: str
    name: str
    avatar: str = "👤"
    color: str = "blue"
    is_admin: bool = False


@dataclass
class Task:
    """A chore instance.

    Completing a task never resets it; the recurrence scheduler spawns a
    fresh instance with a new id and the completed one stays as history.
    """

    id: str
    name: str
    due_date: datetime                # completion time once completed
    description: str = ""
    assigned_to: str | None = None    # Member.id, None when unassigned
    schedule: str = ""                # free-text label, e.g. "Mon, Wed, Fri"
    priority: str = "medium"          # low | medium | high
    duration_days: int = 7            # recurrence interval in days
    completed: bool = False
    weight: int = 2                   # effort score, 1..5


@dataclass
class Item:
    """A consumable tracked in the household inventory."""

    id: str
    name: str
    quantity: int
    min_quantity: int = 1
    unit: str = ""
