"""
HomeHarmony — Periodic jobs.

Follow-up check: on every tick, materialize recurring chores whose fire
threshold has passed and announce them to the household chats.

Delivery goes through the NotificationPort protocol; the text itself is
written in Telegram's Markdown dialect, with user-typed names escaped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from telegram.helpers import escape_markdown

from src.core.errors import HouseholdError

if TYPE_CHECKING:
    from src.core.household_service import HouseholdService
    from src.data.models import Member, Task
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


def format_follow_up_message(follow_ups: list[Task], members: list[Member]) -> str:
    """Build the Markdown announcement for freshly spawned chores."""
    names = {m.id: escape_markdown(m.name) for m in members}
    lines = ["🔁 *Recurring chores are back:*"]
    for task in follow_ups:
        who = names.get(task.assigned_to, "unassigned")
        lines.append(f"• {escape_markdown(task.name)} → {who} (due {task.due_date:%Y-%m-%d})")
    return "\n".join(lines)


async def check_follow_ups(
    service: HouseholdService,
    notifier: NotificationPort,
    chat_ids: Iterable[int],
) -> list[Task]:
    """Run the recurrence check once and notify every chat about new chores.

    Graceful degradation:
    - household error (e.g. no members) -> logged, nothing spawned
    - a chat fails to receive the message -> logged, others still notified
    """
    try:
        follow_ups = service.run_follow_ups()
    except HouseholdError as exc:
        logger.warning("Follow-up check skipped: %s", exc)
        return []

    if not follow_ups:
        return []

    text = format_follow_up_message(follow_ups, service.list_members())
    for chat_id in chat_ids:
        try:
            await notifier.send_message(chat_id, text)
        except Exception as exc:
            logger.error("Failed to announce follow-ups to %d: %s", chat_id, exc)

    logger.info("Announced %d follow-up chore(s)", len(follow_ups))
    return follow_ups
