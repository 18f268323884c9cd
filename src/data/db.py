"""
HomeHarmony — Household Database.

SQLite-backed member, task and item stores plus the follow-up ledger.
Stores persist whatever they are given; household rules (admins,
self-removal, quantity clamping) are checked by the caller beforehand.
Rows come back in insertion order, which is the member rotation order.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from src.core.errors import NotFound
from src.data.models import Item, Member, Task

logger = logging.getLogger(__name__)


def _resolve_path(db_path: str | None) -> str:
    if db_path is None:
        from src.config import settings
        db_path = settings.DATABASE_PATH
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return db_path


def _parse_due(value: str) -> datetime:
    """Due dates are stored in UTC; rows written without an offset are UTC too."""
    due = datetime.fromisoformat(value)
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    return due


def _insert_task(conn: sqlite3.Connection, task: Task) -> None:
    conn.execute(
        """
        INSERT INTO tasks
            (name, description, assigned_to, schedule, priority,
             duration_days, completed, due_date, weight, id)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (*TaskDB._task_params(task), task.id),
    )


class MemberDB:
    """SQLite-backed storage for household members and their login secret."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the members table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    id        TEXT    PRIMARY KEY,
                    name      TEXT    NOT NULL,
                    avatar    TEXT    NOT NULL DEFAULT '👤',
                    color     TEXT    NOT NULL DEFAULT 'blue',
                    is_admin  INTEGER NOT NULL DEFAULT 0,
                    password  TEXT    NOT NULL DEFAULT ''
                )
            """)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(members)").fetchall()
            }
            if "password" not in existing_cols:
                conn.execute(
                    "ALTER TABLE members ADD COLUMN password TEXT NOT NULL DEFAULT ''"
                )
        logger.debug("Members table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> Member:
        return Member(
            id=row["id"],
            name=row["name"],
            avatar=row["avatar"],
            color=row["color"],
            is_admin=bool(row["is_admin"]),
        )

    def add_member(self, member: Member, password: str = "") -> Member:
        """Insert a member with an already-assigned id."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO members (id, name, avatar, color, is_admin, password)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (member.id, member.name, member.avatar, member.color,
                 int(member.is_admin), password),
            )
        logger.info("Member added: %s '%s'", member.id, member.name)
        return member

    def get_member(self, member_id: str) -> Member | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM members WHERE id = ?", (member_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_member(row)

    def list_members(self) -> list[Member]:
        """Return all members in the order they were added."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM members ORDER BY rowid").fetchall()
        return [self._row_to_member(r) for r in rows]

    def update_member(self, member: Member) -> Member:
        """Overwrite name/avatar/color/admin flag. Raises NotFound."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE members SET name = ?, avatar = ?, color = ?, is_admin = ?
                WHERE id = ?
                """,
                (member.name, member.avatar, member.color,
                 int(member.is_admin), member.id),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"Member {member.id} not found")
        logger.info("Member %s updated (admin=%s)", member.id, member.is_admin)
        return member

    def set_password(self, member_id: str, password: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE members SET password = ? WHERE id = ?",
                (password, member_id),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"Member {member_id} not found")
        logger.info("Password changed for member %s", member_id)

    def find_by_credentials(self, name: str, password: str) -> Member | None:
        """Plain equality match on name and password."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM members WHERE name = ? AND password = ?",
                (name, password),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_member(row)

    def delete_member(self, member_id: str) -> bool:
        """Permanently delete a member. Their tasks are not touched."""
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Member %s deleted", member_id)
        return deleted


class TaskDB:
    """SQLite-backed storage for household tasks."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the tasks table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id             TEXT    PRIMARY KEY,
                    name           TEXT    NOT NULL,
                    description    TEXT    NOT NULL DEFAULT '',
                    assigned_to    TEXT,
                    schedule       TEXT    NOT NULL DEFAULT '',
                    priority       TEXT    NOT NULL DEFAULT 'medium',
                    duration_days  INTEGER NOT NULL DEFAULT 7,
                    completed      INTEGER NOT NULL DEFAULT 0,
                    due_date       TEXT    NOT NULL,
                    weight         INTEGER NOT NULL DEFAULT 2
                )
            """)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            if "schedule" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN schedule TEXT NOT NULL DEFAULT ''"
                )
            if "weight" not in existing_cols:
                conn.execute(
                    "ALTER TABLE tasks ADD COLUMN weight INTEGER NOT NULL DEFAULT 2"
                )
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            assigned_to=row["assigned_to"],
            schedule=row["schedule"],
            priority=row["priority"],
            duration_days=row["duration_days"],
            completed=bool(row["completed"]),
            due_date=_parse_due(row["due_date"]),
            weight=row["weight"],
        )

    @staticmethod
    def _task_params(task: Task) -> tuple:
        return (
            task.name, task.description, task.assigned_to, task.schedule,
            task.priority, task.duration_days, int(task.completed),
            task.due_date.astimezone(timezone.utc).isoformat(), task.weight,
        )

    def add_task(self, task: Task) -> Task:
        """Insert a task with an already-assigned id."""
        with self._connect() as conn:
            _insert_task(conn, task)
        logger.info(
            "Task added: %s '%s' (weight %d) -> %s",
            task.id, task.name, task.weight, task.assigned_to,
        )
        return task

    def get_task(self, task_id: str) -> Task | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self) -> list[Task]:
        """Return all tasks, completed history included, oldest first."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM tasks ORDER BY rowid").fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_task(self, task: Task) -> Task:
        """Overwrite every field of an existing task. Raises NotFound."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE tasks SET
                    name = ?, description = ?, assigned_to = ?, schedule = ?,
                    priority = ?, duration_days = ?, completed = ?,
                    due_date = ?, weight = ?
                WHERE id = ?
                """,
                (*self._task_params(task), task.id),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"Task {task.id} not found")
        logger.debug("Task %s updated", task.id)
        return task

    def delete_task(self, task_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task %s deleted", task_id)
        return deleted


class ItemDB:
    """SQLite-backed storage for inventory items."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id            TEXT    PRIMARY KEY,
                    name          TEXT    NOT NULL,
                    quantity      INTEGER NOT NULL DEFAULT 0,
                    min_quantity  INTEGER NOT NULL DEFAULT 1,
                    unit          TEXT    NOT NULL DEFAULT ''
                )
            """)
        logger.debug("Items table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            id=row["id"],
            name=row["name"],
            quantity=row["quantity"],
            min_quantity=row["min_quantity"],
            unit=row["unit"],
        )

    def add_item(self, item: Item) -> Item:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO items (id, name, quantity, min_quantity, unit)
                VALUES (?, ?, ?, ?, ?)
                """,
                (item.id, item.name, item.quantity, item.min_quantity, item.unit),
            )
        logger.info("Item added: %s '%s' x%d", item.id, item.name, item.quantity)
        return item

    def get_item(self, item_id: str) -> Item | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM items WHERE id = ?", (item_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def list_items(self) -> list[Item]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM items ORDER BY rowid").fetchall()
        return [self._row_to_item(r) for r in rows]

    def update_item(self, item: Item) -> Item:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE items SET name = ?, quantity = ?, min_quantity = ?, unit = ?
                WHERE id = ?
                """,
                (item.name, item.quantity, item.min_quantity, item.unit, item.id),
            )
        if cursor.rowcount == 0:
            raise NotFound(f"Item {item.id} not found")
        logger.info("Item %s now x%d", item.id, item.quantity)
        return item

    def delete_item(self, item_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Item %s deleted", item_id)
        return deleted


class FollowUpDB:
    """Durable follow-up ledger: which completed tasks already spawned.

    Lives in the same SQLite file as the tasks it guards. A claim writes the
    ledger row and the follow-up task row in one transaction, so a source is
    either Materialized with its follow-up stored, or still pending.
    """

    def __init__(self, task_db: TaskDB) -> None:
        self._task_db = task_db
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return self._task_db._connect()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS follow_ups (
                    source_task_id  TEXT PRIMARY KEY,
                    follow_up_id    TEXT NOT NULL,
                    created_at      TEXT NOT NULL
                )
            """)
        logger.debug("Follow-up ledger initialized at %s", self._task_db._db_path)

    def is_materialized(self, source_task_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM follow_ups WHERE source_task_id = ?",
                (source_task_id,),
            ).fetchone()
        return row is not None

    def claim(self, source_task_id: str, follow_up: Task) -> bool:
        """Mark the source Materialized and store ``follow_up``.

        False if the source was already claimed. INSERT OR IGNORE decides the
        winner; a failing task insert rolls the ledger row back with it.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO follow_ups
                    (source_task_id, follow_up_id, created_at)
                VALUES (?, ?, ?)
                """,
                (source_task_id, follow_up.id,
                 datetime.now(timezone.utc).isoformat()),
            )
            if cursor.rowcount != 1:
                return False
            _insert_task(conn, follow_up)
        logger.info("Follow-up %s stored for task %s", follow_up.id, source_task_id)
        return True
