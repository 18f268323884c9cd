"""
HomeHarmony — Telegram Bot.

Telegram is the household's user interface: members, chores, inventory and
the dashboard are all managed through commands here, and new recurring
chores are announced by a repeating job.

Security-first: unauthorized Telegram users are silently ignored. Within
the allowed chats, members identify themselves with /login.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.helpers import escape_markdown
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core.dashboard import time_left_label
from src.core.errors import HouseholdError, NotFound, ValidationError
from src.core.inventory import stock_status
from src.data.models import MAX_WEIGHT, MIN_WEIGHT, PRIORITIES

if TYPE_CHECKING:
    from src.core.household_service import HouseholdService
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_ID_PREFIX_LEN = 6
_STOCK_ICONS = {"low": "⚠️", "medium": "📋", "good": "✅"}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(context: ContextTypes.DEFAULT_TYPE) -> HouseholdService:
    return context.bot_data["household"]


def _short(record_id: str) -> str:
    return record_id[:_ID_PREFIX_LEN]


def _match_id(prefix: str, ids: list[str], kind: str) -> str:
    """Resolve a (possibly shortened) id typed by the user."""
    prefix = prefix.strip()
    if not prefix:
        raise ValidationError(f"Missing {kind} id")
    if prefix in ids:
        return prefix
    matches = [i for i in ids if i.startswith(prefix)]
    if not matches:
        raise NotFound(f"No {kind} with id {prefix}")
    if len(matches) > 1:
        raise ValidationError(f"Id {prefix} matches several {kind}s; type more characters")
    return matches[0]


async def _require_member(
    update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> str | None:
    """Return the logged-in member id, or reply with a hint and return None."""
    member_id = context.user_data.get("member_id")
    if member_id is None:
        await update.message.reply_text("Please /login <name> <password> first.")
    return member_id


def _quantity(item) -> str:
    return f"{item.quantity} {item.unit}".rstrip()


def _esc(text: str) -> str:
    """Escape user-typed text for parse_mode="Markdown" replies."""
    return escape_markdown(text)


def _parse_int(text: str, default: int | None = None) -> int:
    text = text.strip()
    if not text and default is not None:
        return default
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"'{text}' is not a whole number") from None


# ---------------------------------------------------------------------------
# General commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *HomeHarmony*!\n\n"
        "I keep the household fair:\n"
        "• /addtask gives a new chore to whoever has the least on their plate\n"
        "• /done marks a chore complete; it comes back for the next person\n"
        "• /items tracks what is running low\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/login <name> <password> — Identify yourself\n"
        "/logout — Forget who you are\n"
        "/password <new> — Change your password\n"
        "/members — List household members\n"
        "/addmember <name> [password] [avatar] — Add a member\n"
        "/admin <id> — Grant or revoke admin rights\n"
        "/removemember — Remove a member\n"
        "/tasks — List open chores\n"
        "/addtask — Create a chore\n"
        "/done <id> — Toggle a chore complete\n"
        "/deletetask <id> — Delete a chore\n"
        "/redistribute — Rebalance all open chores\n"
        "/items — Show inventory\n"
        "/additem <name> <qty> <min> [unit] — Track an item\n"
        "/use <id> [n] — Use up stock\n"
        "/restock <id> [n] — Add stock\n"
        "/deleteitem <id> — Stop tracking an item\n"
        "/dashboard — Household overview\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_login(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /login <name> <password>."""
    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text("Usage: /login <name> <password>")
        return

    name, secret = " ".join(args[:-1]), args[-1]
    try:
        member = _service(context).login(name, secret)
    except Exception as exc:
        logger.error("/login error: %s", exc)
        await update.message.reply_text("Login failed. Please try again.")
        return

    if member is None:
        await update.message.reply_text("Wrong name or password.")
        return

    context.user_data["member_id"] = member.id
    await update.message.reply_text(f"Hi {member.avatar} {member.name}!")


@authorized_only
async def cmd_logout(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop("member_id", None)
    await update.message.reply_text("Logged out.")


@authorized_only
async def cmd_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /password <new> — change your own login password."""
    member_id = await _require_member(update, context)
    if member_id is None:
        return
    if not context.args:
        await update.message.reply_text("Usage: /password <new_password>")
        return

    try:
        _service(context).change_password(member_id, context.args[0])
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/password error: %s", exc)
        await update.message.reply_text("Couldn't change the password. Please try again.")
        return

    await update.message.reply_text("🔑 Password changed.")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_members(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /members — list members with their open workload."""
    from src.core.workload import workload_by_member

    service = _service(context)
    try:
        members = service.list_members()
        loads = workload_by_member(members, service.list_tasks())
    except Exception as exc:
        logger.error("/members error: %s", exc)
        await update.message.reply_text("Couldn't load members. Please try again.")
        return

    if not members:
        await update.message.reply_text("No members yet. Use /addmember <name> to start.")
        return

    lines = ["*Members:*\n"]
    for m in members:
        crown = " 👑" if m.is_admin else ""
        lines.append(f"`{_short(m.id)}` {m.avatar} {_esc(m.name)}{crown} — load {loads[m.id]}")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_addmember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addmember <name> [password] [avatar].

    The very first member can be added without logging in; they become
    admin and are logged in automatically.
    """
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /addmember <name> [password] [avatar]")
        return

    service = _service(context)
    try:
        bootstrap = not service.list_members()
        if not bootstrap and await _require_member(update, context) is None:
            return
        kwargs = {}
        if len(args) > 2:
            kwargs["avatar"] = args[2]
        member = service.add_member(
            args[0], password=args[1] if len(args) > 1 else "", **kwargs,
        )
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/addmember error: %s", exc)
        await update.message.reply_text("Couldn't add the member. Please try again.")
        return

    if bootstrap:
        context.user_data["member_id"] = member.id
    role = " as admin" if member.is_admin else ""
    await update.message.reply_text(f"✅ Added {member.avatar} *{_esc(member.name)}*{role}.", parse_mode="Markdown")


@authorized_only
async def cmd_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /admin <member_id> — toggle admin rights."""
    acting = await _require_member(update, context)
    if acting is None:
        return
    if not context.args:
        await update.message.reply_text("Usage: /admin <member_id>\nUse /members to see IDs.")
        return

    service = _service(context)
    try:
        member_id = _match_id(context.args[0], [m.id for m in service.list_members()], "member")
        member = service.toggle_admin(member_id, acting)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/admin error: %s", exc)
        await update.message.reply_text("Couldn't change admin rights. Please try again.")
        return

    state = "is now an admin 👑" if member.is_admin else "is no longer an admin"
    await update.message.reply_text(f"{member.name} {state}.")


@authorized_only
async def cmd_removemember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /removemember — show other members as buttons to pick from."""
    acting = await _require_member(update, context)
    if acting is None:
        return

    try:
        members = _service(context).list_members()
    except Exception as exc:
        logger.error("/removemember error: %s", exc)
        await update.message.reply_text("Couldn't load members. Please try again.")
        return

    others = [m for m in members if m.id != acting]
    if not others:
        await update.message.reply_text("There is nobody else to remove.")
        return

    keyboard = [
        [InlineKeyboardButton(f"{m.avatar} {m.name}", callback_data=f"delmember:{m.id}")]
        for m in others
    ]
    await update.message.reply_text(
        "Who should be removed?",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_removemember_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to remove a member."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    if user is None or user.id not in settings.ALLOWED_USER_IDS:
        return

    acting = context.user_data.get("member_id")
    if acting is None:
        await query.edit_message_text("Please /login first.")
        return

    member_id = query.data.split(":", 1)[1]
    try:
        reassigned = _service(context).remove_member(member_id, acting)
    except HouseholdError as exc:
        await query.edit_message_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("removemember callback error: %s", exc)
        await query.edit_message_text("Something went wrong. Please try again.")
        return

    msg = "✅ Member removed."
    if reassigned:
        msg += f"\n{len(reassigned)} open chore(s) were handed to other members."
    await query.edit_message_text(msg)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks — list open chores with assignee and time left."""
    service = _service(context)
    try:
        tasks = [t for t in service.list_tasks() if not t.completed]
        names = {m.id: f"{m.avatar} {_esc(m.name)}" for m in service.list_members()}
        now = service.now()
    except Exception as exc:
        logger.error("/tasks error: %s", exc)
        await update.message.reply_text("Couldn't load chores. Please try again.")
        return

    if not tasks:
        await update.message.reply_text("No open chores. 🎉")
        return

    lines = ["*Open chores:*\n"]
    for t in tasks:
        who = names.get(t.assigned_to, "unassigned")
        lines.append(
            f"`{_short(t.id)}` {_esc(t.name)} [{t.priority}, w{t.weight}] — {who}, "
            f"{time_left_label(t.due_date, now)}"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <id> — toggle a chore's completion."""
    if await _require_member(update, context) is None:
        return
    if not context.args:
        await update.message.reply_text("Usage: /done <task_id>\nUse /tasks to see IDs.")
        return

    service = _service(context)
    try:
        task_id = _match_id(context.args[0], [t.id for t in service.list_tasks()], "task")
        task = service.toggle_task(task_id)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/done error: %s", exc)
        await update.message.reply_text("Couldn't update the chore. Please try again.")
        return

    if task.completed:
        await update.message.reply_text(
            f"✅ Marked '*{_esc(task.name)}*' as done. It comes back for the next person soon.",
            parse_mode="Markdown",
        )
    else:
        await update.message.reply_text(f"↩️ '*{_esc(task.name)}*' is open again.", parse_mode="Markdown")


@authorized_only
async def cmd_deletetask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deletetask <id>."""
    if await _require_member(update, context) is None:
        return
    if not context.args:
        await update.message.reply_text("Usage: /deletetask <task_id>")
        return

    service = _service(context)
    try:
        task_id = _match_id(context.args[0], [t.id for t in service.list_tasks()], "task")
        service.delete_task(task_id)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/deletetask error: %s", exc)
        await update.message.reply_text("Couldn't delete the chore. Please try again.")
        return

    await update.message.reply_text("🗑️ Chore deleted.")


@authorized_only
async def cmd_redistribute(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /redistribute — rebalance every open chore."""
    if await _require_member(update, context) is None:
        return

    service = _service(context)
    try:
        changed = service.redistribute_tasks()
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/redistribute error: %s", exc)
        await update.message.reply_text("Couldn't redistribute chores. Please try again.")
        return

    if not changed:
        await update.message.reply_text("⚖️ Chores are already balanced.")
        return
    await update.message.reply_text(f"⚖️ Redistributed: {len(changed)} chore(s) changed hands.")


# ---------------------------------------------------------------------------
# /addtask conversation
# ---------------------------------------------------------------------------

TASK_NAME, TASK_DESCRIPTION, TASK_SCHEDULE, TASK_PRIORITY, TASK_DURATION, TASK_WEIGHT = range(6)

_TASK_KEYS = (
    "task_name", "task_description", "task_schedule",
    "task_priority", "task_duration",
)


@authorized_only
async def cmd_addtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int | None:
    """Entry point: /addtask — ask for the chore name."""
    if await _require_member(update, context) is None:
        return ConversationHandler.END
    await update.message.reply_text("What's the chore? (e.g. Clean Kitchen)\nSend /cancel to stop.")
    return TASK_NAME


async def addtask_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    name = update.message.text.strip()
    if not name:
        await update.message.reply_text("The chore needs a name.")
        return TASK_NAME
    context.user_data["task_name"] = name
    await update.message.reply_text("Describe it in a sentence (or send - to skip).")
    return TASK_DESCRIPTION


async def addtask_description(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    context.user_data["task_description"] = "" if text == "-" else text
    await update.message.reply_text("When does it happen? e.g. 'Monday, Wednesday, Friday' (or -).")
    return TASK_SCHEDULE


async def addtask_schedule(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    context.user_data["task_schedule"] = "" if text == "-" else text
    await update.message.reply_text(
        "Priority?",
        reply_markup=ReplyKeyboardMarkup(
            [list(PRIORITIES)], one_time_keyboard=True, resize_keyboard=True,
        ),
    )
    return TASK_PRIORITY


async def addtask_priority(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    priority = update.message.text.strip().lower()
    if priority not in PRIORITIES:
        await update.message.reply_text(f"Please pick one of: {', '.join(PRIORITIES)}")
        return TASK_PRIORITY
    context.user_data["task_priority"] = priority
    await update.message.reply_text(
        f"Every how many days does it repeat? (default {settings.DEFAULT_TASK_DURATION_DAYS})",
        reply_markup=ReplyKeyboardRemove(),
    )
    return TASK_DURATION


async def addtask_duration(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        days = _parse_int(update.message.text, settings.DEFAULT_TASK_DURATION_DAYS)
    except ValidationError:
        await update.message.reply_text("Please send a number of days, e.g. 7.")
        return TASK_DURATION
    if days < 1:
        await update.message.reply_text("It has to repeat after at least 1 day.")
        return TASK_DURATION
    context.user_data["task_duration"] = days
    await update.message.reply_text(
        f"How hard is it, {MIN_WEIGHT}-{MAX_WEIGHT}? (default {settings.DEFAULT_TASK_WEIGHT})"
    )
    return TASK_WEIGHT


async def addtask_weight(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        weight = _parse_int(update.message.text, settings.DEFAULT_TASK_WEIGHT)
    except ValidationError:
        await update.message.reply_text(f"Please send a number {MIN_WEIGHT}-{MAX_WEIGHT}.")
        return TASK_WEIGHT
    if not MIN_WEIGHT <= weight <= MAX_WEIGHT:
        await update.message.reply_text(f"Difficulty must be {MIN_WEIGHT}-{MAX_WEIGHT}.")
        return TASK_WEIGHT

    service = _service(context)
    data = context.user_data
    try:
        task = service.add_task(
            name=data["task_name"],
            description=data.get("task_description", ""),
            schedule=data.get("task_schedule", ""),
            priority=data.get("task_priority", "medium"),
            duration_days=data.get("task_duration", settings.DEFAULT_TASK_DURATION_DAYS),
            weight=weight,
        )
        assignee = service.get_member(task.assigned_to)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        _clear_task_data(context)
        return ConversationHandler.END
    except Exception as exc:
        logger.error("/addtask error: %s", exc)
        await update.message.reply_text("Couldn't save the chore. Please try again.")
        _clear_task_data(context)
        return ConversationHandler.END

    _clear_task_data(context)
    await update.message.reply_text(
        f"✅ *{_esc(task.name)}* goes to {assignee.avatar} {_esc(assignee.name)} "
        f"(due {task.due_date:%Y-%m-%d}).",
        parse_mode="Markdown",
    )
    return ConversationHandler.END


async def addtask_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _clear_task_data(context)
    await update.message.reply_text("Chore creation cancelled.", reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


def _clear_task_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for k in _TASK_KEYS:
        context.user_data.pop(k, None)


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_items(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /items — show stock levels."""
    try:
        items = _service(context).list_items()
    except Exception as exc:
        logger.error("/items error: %s", exc)
        await update.message.reply_text("Couldn't load the inventory. Please try again.")
        return

    if not items:
        await update.message.reply_text("Nothing tracked yet. Use /additem to start.")
        return

    lines = ["*Inventory:*\n"]
    for i in items:
        status = stock_status(i)
        lines.append(
            f"`{_short(i.id)}` {_STOCK_ICONS[status]} {_esc(i.name)}: {_esc(_quantity(i))} "
            f"(min {i.min_quantity})"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_additem(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /additem <name> <qty> <min> [unit]."""
    if await _require_member(update, context) is None:
        return
    args = context.args or []
    if len(args) < 3:
        await update.message.reply_text("Usage: /additem <name> <qty> <min> [unit]")
        return

    try:
        item = _service(context).add_item(
            name=args[0],
            quantity=_parse_int(args[1]),
            min_quantity=_parse_int(args[2]),
            unit=" ".join(args[3:]),
        )
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/additem error: %s", exc)
        await update.message.reply_text("Couldn't add the item. Please try again.")
        return

    await update.message.reply_text(f"✅ Tracking {item.name}: {_quantity(item)}")


async def _change_stock(
    update: Update, context: ContextTypes.DEFAULT_TYPE, sign: int, command: str,
) -> None:
    if await _require_member(update, context) is None:
        return
    args = context.args or []
    if not args:
        await update.message.reply_text(f"Usage: /{command} <item_id> [amount]")
        return

    service = _service(context)
    try:
        amount = _parse_int(args[1] if len(args) > 1 else "", 1)
        item_id = _match_id(args[0], [i.id for i in service.list_items()], "item")
        item = service.adjust_item(item_id, sign * amount)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/%s error: %s", command, exc)
        await update.message.reply_text("Couldn't update the item. Please try again.")
        return

    msg = f"{item.name}: {_quantity(item)}"
    if stock_status(item) == "low":
        msg += "\n⚠️ Running low — time to buy more."
    await update.message.reply_text(msg)


@authorized_only
async def cmd_use(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /use <id> [n] — decrement stock, never below zero."""
    await _change_stock(update, context, -1, "use")


@authorized_only
async def cmd_restock(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /restock <id> [n]."""
    await _change_stock(update, context, 1, "restock")


@authorized_only
async def cmd_deleteitem(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if await _require_member(update, context) is None:
        return
    if not context.args:
        await update.message.reply_text("Usage: /deleteitem <item_id>")
        return

    service = _service(context)
    try:
        item_id = _match_id(context.args[0], [i.id for i in service.list_items()], "item")
        service.delete_item(item_id)
    except HouseholdError as exc:
        await update.message.reply_text(f"⚠️ {exc}")
        return
    except Exception as exc:
        logger.error("/deleteitem error: %s", exc)
        await update.message.reply_text("Couldn't delete the item. Please try again.")
        return

    await update.message.reply_text("🗑️ Item removed.")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_dashboard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dashboard — completion, overdue chores, low stock, workload."""
    try:
        summary = _service(context).dashboard()
    except Exception as exc:
        logger.error("/dashboard error: %s", exc)
        await update.message.reply_text("Couldn't build the dashboard. Please try again.")
        return

    lines = [
        "*Household dashboard*",
        f"Chores done: {summary.completed_tasks}/{summary.total_tasks} "
        f"({summary.completion_rate:.0f}%)",
        f"Overdue: {len(summary.overdue_tasks)}",
        f"Low stock: {len(summary.low_stock_items)}",
    ]
    if summary.overdue_tasks:
        lines.append("\n*Overdue chores:*")
        lines.extend(f"• {_esc(t.name)}" for t in summary.overdue_tasks)
    if summary.low_stock_items:
        lines.append("\n*Running low:*")
        lines.extend(f"• {_esc(i.name)} ({_esc(_quantity(i))})" for i in summary.low_stock_items)
    if summary.member_stats:
        lines.append("\n*Workload:*")
        lines.extend(
            f"• {_esc(s.name)}: {s.completed_weight}/{s.total_weight} done "
            f"({s.completion_rate:.0f}%), {s.total_tasks} chore(s)"
            for s in summary.member_stats
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_service() -> HouseholdService:
    """Wire the SQLite stores, ledger, clock and scheduler from settings."""
    from datetime import datetime, time

    from src.adapters.plaintext_auth import PlaintextAuthenticator
    from src.core.household_service import HouseholdService
    from src.core.recurrence import RecurrenceScheduler
    from src.data.db import FollowUpDB, ItemDB, MemberDB, TaskDB

    tz = ZoneInfo(settings.TIMEZONE)
    member_db = MemberDB()
    task_db = TaskDB()
    scheduler = RecurrenceScheduler(
        ledger=FollowUpDB(task_db),
        fire_time=time(hour=settings.FOLLOW_UP_FIRE_HOUR),
        tz=tz,
    )
    return HouseholdService(
        member_store=member_db,
        task_store=task_db,
        item_store=ItemDB(),
        scheduler=scheduler,
        authenticator=PlaintextAuthenticator(member_db),
        clock=lambda: datetime.now(tz),
        new_task_due_days=settings.NEW_TASK_DUE_DAYS,
        orphan_policy=settings.ORPHANED_TASK_POLICY,
    )


def build_app(
    service: HouseholdService | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: Household service. Defaults to SQLite-backed stores.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if service is None:
        service = build_service()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    app.bot_data["household"] = service
    app.bot_data["notifier"] = notifier

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("login", cmd_login))
    app.add_handler(CommandHandler("logout", cmd_logout))
    app.add_handler(CommandHandler("password", cmd_password))
    app.add_handler(CommandHandler("members", cmd_members))
    app.add_handler(CommandHandler("addmember", cmd_addmember))
    app.add_handler(CommandHandler("admin", cmd_admin))
    app.add_handler(CommandHandler("removemember", cmd_removemember))
    app.add_handler(CommandHandler("tasks", cmd_tasks))
    app.add_handler(CommandHandler("done", cmd_done))
    app.add_handler(CommandHandler("deletetask", cmd_deletetask))
    app.add_handler(CommandHandler("redistribute", cmd_redistribute))
    app.add_handler(CommandHandler("items", cmd_items))
    app.add_handler(CommandHandler("additem", cmd_additem))
    app.add_handler(CommandHandler("use", cmd_use))
    app.add_handler(CommandHandler("restock", cmd_restock))
    app.add_handler(CommandHandler("deleteitem", cmd_deleteitem))
    app.add_handler(CommandHandler("dashboard", cmd_dashboard))
    app.add_handler(CallbackQueryHandler(_handle_removemember_callback, pattern=r"^delmember:"))

    # /addtask conversation handler
    _text = filters.TEXT & ~filters.COMMAND
    addtask_conv = ConversationHandler(
        entry_points=[CommandHandler("addtask", cmd_addtask)],
        states={
            TASK_NAME: [MessageHandler(_text, addtask_name)],
            TASK_DESCRIPTION: [MessageHandler(_text, addtask_description)],
            TASK_SCHEDULE: [MessageHandler(_text, addtask_schedule)],
            TASK_PRIORITY: [MessageHandler(_text, addtask_priority)],
            TASK_DURATION: [MessageHandler(_text, addtask_duration)],
            TASK_WEIGHT: [MessageHandler(_text, addtask_weight)],
        },
        fallbacks=[CommandHandler("cancel", addtask_cancel)],
    )
    app.add_handler(addtask_conv)

    _setup_follow_up_job(app, service, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_follow_up_job(
    app: Application,
    service: HouseholdService,
    notifier: NotificationPort,
) -> None:
    """Register the repeating recurring-chore check."""
    from src.core.scheduler import check_follow_ups

    async def _follow_up_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await check_follow_ups(service, notifier, settings.ALLOWED_USER_IDS)

    app.job_queue.run_repeating(
        _follow_up_job_callback,
        interval=timedelta(minutes=settings.FOLLOW_UP_CHECK_MINUTES),
        first=10,
        name="follow_up_check",
    )

    logger.info(
        "Follow-up check scheduled every %d min (fires at %02d:00 %s)",
        settings.FOLLOW_UP_CHECK_MINUTES,
        settings.FOLLOW_UP_FIRE_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting HomeHarmony bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
