"""Tests for src.bot.telegram_bot — Telegram bot handlers.

Tests the conversation flow logic, command handlers, and authorization.
The household service is mocked unless a test needs real stores.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.ext import ConversationHandler

from src.bot.telegram_bot import (
    TASK_DESCRIPTION,
    TASK_DURATION,
    TASK_PRIORITY,
    TASK_SCHEDULE,
    TASK_WEIGHT,
    _clear_task_data,
    _match_id,
    _parse_int,
)
from src.core.errors import InvalidState, NotFound, ValidationError
from src.data.models import Item, Member, Task

DUE = datetime(2025, 6, 12, 9, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _make_update(text="", user_id=12345, first_name="Amit"):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.effective_user.first_name = first_name
    update.message.reply_text = AsyncMock()
    return update


def _make_context(service=None, args=None, member_id=None):
    """Create a mock context with user_data, args and the household service."""
    context = MagicMock()
    context.user_data = {} if member_id is None else {"member_id": member_id}
    context.args = args or []
    context.bot_data = {"household": service or MagicMock()}
    return context


def _reply_text(update):
    return update.message.reply_text.call_args[0][0]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestMatchId:
    IDS = ["abc123", "abd456", "xyz789"]

    def test_exact(self):
        assert _match_id("xyz789", self.IDS, "task") == "xyz789"

    def test_unique_prefix(self):
        assert _match_id("abc", self.IDS, "task") == "abc123"

    def test_ambiguous_prefix(self):
        with pytest.raises(ValidationError, match="several"):
            _match_id("ab", self.IDS, "task")

    def test_no_match(self):
        with pytest.raises(NotFound):
            _match_id("qqq", self.IDS, "task")

    def test_blank(self):
        with pytest.raises(ValidationError):
            _match_id("  ", self.IDS, "task")


class TestParseInt:
    def test_number(self):
        assert _parse_int(" 4 ") == 4

    def test_default_on_blank(self):
        assert _parse_int("", 7) == 7

    def test_not_a_number(self):
        with pytest.raises(ValidationError):
            _parse_int("lots")


class TestClearTaskData:
    def test_clears_all_keys(self):
        context = MagicMock()
        context.user_data = {
            "task_name": "Dishes",
            "task_description": "",
            "task_schedule": "Mon",
            "task_priority": "low",
            "task_duration": 3,
            "member_id": "keep",
        }
        _clear_task_data(context)
        assert context.user_data == {"member_id": "keep"}


# ---------------------------------------------------------------------------
# Authorization and login
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_unauthorized_user_is_ignored(self):
        from src.bot.telegram_bot import cmd_start

        update = MagicMock()
        update.effective_user.id = 99999  # not in ALLOWED_USER_IDS
        update.message.reply_text = AsyncMock()
        context = MagicMock()

        await cmd_start(update, context)
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_authorized_user_gets_response(self):
        from src.bot.telegram_bot import cmd_start

        update = _make_update("/start")
        await cmd_start(update, MagicMock())
        update.message.reply_text.assert_called_once()

    @pytest.mark.asyncio
    async def test_unauthorized_user_cannot_touch_service(self):
        from src.bot.telegram_bot import cmd_redistribute

        service = MagicMock()
        update = _make_update("/redistribute", user_id=99999)
        await cmd_redistribute(update, _make_context(service, member_id="m1"))
        service.redistribute_tasks.assert_not_called()


class TestLogin:
    @pytest.mark.asyncio
    async def test_success_stores_member(self):
        from src.bot.telegram_bot import cmd_login

        service = MagicMock()
        service.login.return_value = Member(id="m1", name="Dana Levi")
        context = _make_context(service, args=["Dana", "Levi", "pw"])

        await cmd_login(_make_update("/login"), context)
        service.login.assert_called_once_with("Dana Levi", "pw")
        assert context.user_data["member_id"] == "m1"

    @pytest.mark.asyncio
    async def test_wrong_credentials(self):
        from src.bot.telegram_bot import cmd_login

        service = MagicMock()
        service.login.return_value = None
        update = _make_update("/login")
        context = _make_context(service, args=["Dana", "nope"])

        await cmd_login(update, context)
        assert "member_id" not in context.user_data
        assert _reply_text(update) == "Wrong name or password."

    @pytest.mark.asyncio
    async def test_usage(self):
        from src.bot.telegram_bot import cmd_login

        update = _make_update("/login")
        await cmd_login(update, _make_context(args=["Dana"]))
        assert "Usage" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_logout(self):
        from src.bot.telegram_bot import cmd_logout

        context = _make_context(member_id="m1")
        await cmd_logout(_make_update("/logout"), context)
        assert "member_id" not in context.user_data

    @pytest.mark.asyncio
    async def test_password_changes_secret(self, service):
        from src.bot.telegram_bot import cmd_password

        service.add_member("Alice", password="old-pw")
        update = _make_update("/password")
        await cmd_password(update, _make_context(service, args=["new-pw"], member_id="id-1"))

        assert "changed" in _reply_text(update)
        assert service.login("Alice", "new-pw").id == "id-1"

    @pytest.mark.asyncio
    async def test_password_requires_login(self):
        from src.bot.telegram_bot import cmd_password

        service = MagicMock()
        update = _make_update("/password")
        await cmd_password(update, _make_context(service, args=["new-pw"]))
        service.change_password.assert_not_called()
        assert "/login" in _reply_text(update)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


class TestMemberCommands:
    @pytest.mark.asyncio
    async def test_bootstrap_addmember_logs_in(self, service):
        from src.bot.telegram_bot import cmd_addmember

        update = _make_update("/addmember")
        context = _make_context(service, args=["Alice", "pw"])
        await cmd_addmember(update, context)

        assert context.user_data["member_id"] == "id-1"
        assert "as admin" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_addmember_requires_login_once_household_exists(self, service):
        from src.bot.telegram_bot import cmd_addmember

        service.add_member("Alice")
        update = _make_update("/addmember")
        await cmd_addmember(update, _make_context(service, args=["Bob"]))

        assert "/login" in _reply_text(update)
        assert len(service.list_members()) == 1

    @pytest.mark.asyncio
    async def test_members_lists_load(self, service):
        from src.bot.telegram_bot import cmd_members

        service.add_member("Alice")
        service.add_task("Dishes", weight=3)
        update = _make_update("/members")
        await cmd_members(update, _make_context(service))

        text = _reply_text(update)
        assert "Alice 👑" in text
        assert "load 3" in text

    @pytest.mark.asyncio
    async def test_admin_error_is_reported(self):
        from src.bot.telegram_bot import cmd_admin

        service = MagicMock()
        service.list_members.return_value = [Member(id="m1", name="A"), Member(id="m2", name="B")]
        service.toggle_admin.side_effect = InvalidState("Only an admin can change admin rights")
        update = _make_update("/admin")

        await cmd_admin(update, _make_context(service, args=["m1"], member_id="m2"))
        assert _reply_text(update) == "⚠️ Only an admin can change admin rights"

    @pytest.mark.asyncio
    async def test_removemember_shows_buttons_for_others(self):
        from src.bot.telegram_bot import cmd_removemember

        service = MagicMock()
        service.list_members.return_value = [Member(id="m1", name="A"), Member(id="m2", name="B")]
        update = _make_update("/removemember")

        await cmd_removemember(update, _make_context(service, member_id="m1"))
        call = update.message.reply_text.call_args
        markup = call[1]["reply_markup"]
        assert [row[0].callback_data for row in markup.inline_keyboard] == ["delmember:m2"]

    @pytest.mark.asyncio
    async def test_removemember_callback(self):
        from src.bot.telegram_bot import _handle_removemember_callback

        service = MagicMock()
        service.remove_member.return_value = [MagicMock()]
        update = MagicMock()
        update.callback_query.answer = AsyncMock()
        update.callback_query.edit_message_text = AsyncMock()
        update.callback_query.from_user.id = 12345
        update.callback_query.data = "delmember:m2"

        await _handle_removemember_callback(update, _make_context(service, member_id="m1"))
        service.remove_member.assert_called_once_with("m2", "m1")
        text = update.callback_query.edit_message_text.call_args[0][0]
        assert "1 open chore(s)" in text

    @pytest.mark.asyncio
    async def test_removemember_callback_unauthorized(self):
        from src.bot.telegram_bot import _handle_removemember_callback

        service = MagicMock()
        update = MagicMock()
        update.callback_query.answer = AsyncMock()
        update.callback_query.from_user.id = 99999
        update.callback_query.data = "delmember:m2"

        await _handle_removemember_callback(update, _make_context(service, member_id="m1"))
        service.remove_member.assert_not_called()


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TestTaskCommands:
    @pytest.mark.asyncio
    async def test_tasks_empty(self):
        from src.bot.telegram_bot import cmd_tasks

        service = MagicMock()
        service.list_tasks.return_value = []
        service.list_members.return_value = []
        update = _make_update("/tasks")

        await cmd_tasks(update, _make_context(service))
        update.message.reply_text.assert_called_with("No open chores. 🎉")

    @pytest.mark.asyncio
    async def test_tasks_lists_open_only(self):
        from src.bot.telegram_bot import cmd_tasks

        service = MagicMock()
        service.list_tasks.return_value = [
            Task(id="t1", name="Trash", due_date=DUE, assigned_to="m1"),
            Task(id="t2", name="Old", due_date=DUE, assigned_to="m1", completed=True),
        ]
        service.list_members.return_value = [Member(id="m1", name="Amit")]
        service.now.return_value = NOW
        update = _make_update("/tasks")

        await cmd_tasks(update, _make_context(service))
        text = _reply_text(update)
        assert "Trash" in text
        assert "Amit" in text
        assert "2 days left" in text
        assert "Old" not in text

    @pytest.mark.asyncio
    async def test_done_toggles_by_prefix(self):
        from src.bot.telegram_bot import cmd_done

        service = MagicMock()
        service.list_tasks.return_value = [Task(id="abcdef99", name="Trash", due_date=DUE)]
        service.toggle_task.return_value = Task(
            id="abcdef99", name="Trash", due_date=NOW, completed=True,
        )
        update = _make_update("/done")

        await cmd_done(update, _make_context(service, args=["abcd"], member_id="m1"))
        service.toggle_task.assert_called_once_with("abcdef99")
        assert "done" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_done_unknown_id(self):
        from src.bot.telegram_bot import cmd_done

        service = MagicMock()
        service.list_tasks.return_value = []
        update = _make_update("/done")

        await cmd_done(update, _make_context(service, args=["zzz"], member_id="m1"))
        assert _reply_text(update).startswith("⚠️")
        service.toggle_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_done_requires_login(self):
        from src.bot.telegram_bot import cmd_done

        service = MagicMock()
        update = _make_update("/done")
        await cmd_done(update, _make_context(service, args=["abcd"]))
        service.toggle_task.assert_not_called()
        assert "/login" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_tasks_escapes_markdown_in_names(self):
        from src.bot.telegram_bot import cmd_tasks

        service = MagicMock()
        service.list_tasks.return_value = [
            Task(id="t1", name="take_out trash", due_date=DUE, assigned_to="m1"),
        ]
        service.list_members.return_value = [Member(id="m1", name="Amit_K")]
        service.now.return_value = NOW
        update = _make_update("/tasks")

        await cmd_tasks(update, _make_context(service))
        text = _reply_text(update)
        assert "take\\_out trash" in text
        assert "Amit\\_K" in text
        assert update.message.reply_text.call_args[1]["parse_mode"] == "Markdown"

    @pytest.mark.asyncio
    async def test_redistribute_requires_login(self):
        from src.bot.telegram_bot import cmd_redistribute

        service = MagicMock()
        update = _make_update("/redistribute")
        await cmd_redistribute(update, _make_context(service))
        service.redistribute_tasks.assert_not_called()
        assert "/login" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_redistribute_reports_changes(self):
        from src.bot.telegram_bot import cmd_redistribute

        service = MagicMock()
        service.redistribute_tasks.return_value = [MagicMock(), MagicMock()]
        update = _make_update("/redistribute")
        await cmd_redistribute(update, _make_context(service, member_id="m1"))
        assert "2 chore(s)" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_redistribute_without_members(self):
        from src.bot.telegram_bot import cmd_redistribute

        service = MagicMock()
        service.redistribute_tasks.side_effect = InvalidState("household has no members")
        update = _make_update("/redistribute")
        await cmd_redistribute(update, _make_context(service, member_id="m1"))
        assert _reply_text(update) == "⚠️ household has no members"


# ---------------------------------------------------------------------------
# /addtask conversation
# ---------------------------------------------------------------------------


class TestAddtaskConversation:
    @pytest.mark.asyncio
    async def test_entry_requires_login(self):
        from src.bot.telegram_bot import cmd_addtask

        result = await cmd_addtask(_make_update("/addtask"), _make_context())
        assert result == ConversationHandler.END

    @pytest.mark.asyncio
    async def test_name_advances(self):
        from src.bot.telegram_bot import addtask_name

        context = _make_context()
        result = await addtask_name(_make_update("Clean the kitchen"), context)
        assert context.user_data["task_name"] == "Clean the kitchen"
        assert result == TASK_DESCRIPTION

    @pytest.mark.asyncio
    async def test_description_dash_skips(self):
        from src.bot.telegram_bot import addtask_description

        context = _make_context()
        result = await addtask_description(_make_update("-"), context)
        assert context.user_data["task_description"] == ""
        assert result == TASK_SCHEDULE

    @pytest.mark.asyncio
    async def test_schedule_advances_to_priority(self):
        from src.bot.telegram_bot import addtask_schedule

        context = _make_context()
        result = await addtask_schedule(_make_update("Mon, Fri"), context)
        assert context.user_data["task_schedule"] == "Mon, Fri"
        assert result == TASK_PRIORITY

    @pytest.mark.asyncio
    async def test_invalid_priority_retries(self):
        from src.bot.telegram_bot import addtask_priority

        context = _make_context()
        result = await addtask_priority(_make_update("urgent"), context)
        assert result == TASK_PRIORITY
        assert "task_priority" not in context.user_data

    @pytest.mark.asyncio
    async def test_priority_advances(self):
        from src.bot.telegram_bot import addtask_priority

        context = _make_context()
        result = await addtask_priority(_make_update("High"), context)
        assert context.user_data["task_priority"] == "high"
        assert result == TASK_DURATION

    @pytest.mark.asyncio
    async def test_invalid_duration_retries(self):
        from src.bot.telegram_bot import addtask_duration

        assert await addtask_duration(_make_update("soon"), _make_context()) == TASK_DURATION
        assert await addtask_duration(_make_update("0"), _make_context()) == TASK_DURATION

    @pytest.mark.asyncio
    async def test_duration_advances(self):
        from src.bot.telegram_bot import addtask_duration

        context = _make_context()
        assert await addtask_duration(_make_update("3"), context) == TASK_WEIGHT
        assert context.user_data["task_duration"] == 3

    @pytest.mark.asyncio
    async def test_weight_out_of_range_retries(self):
        from src.bot.telegram_bot import addtask_weight

        service = MagicMock()
        result = await addtask_weight(_make_update("9"), _make_context(service))
        assert result == TASK_WEIGHT
        service.add_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_weight_creates_task(self, service):
        from src.bot.telegram_bot import addtask_weight

        service.add_member("Alice")
        context = _make_context(service, member_id="id-1")
        context.user_data.update({
            "task_name": "Bathroom",
            "task_description": "",
            "task_schedule": "Sat",
            "task_priority": "high",
            "task_duration": 3,
        })
        update = _make_update("4")

        result = await addtask_weight(update, context)

        assert result == ConversationHandler.END
        [task] = service.list_tasks()
        assert (task.name, task.weight, task.duration_days, task.assigned_to) == (
            "Bathroom", 4, 3, "id-1",
        )
        assert "Alice" in _reply_text(update)
        assert "task_name" not in context.user_data

    @pytest.mark.asyncio
    async def test_cancel_clears(self):
        from src.bot.telegram_bot import addtask_cancel

        context = _make_context()
        context.user_data["task_name"] = "Dishes"
        result = await addtask_cancel(_make_update("/cancel"), context)
        assert result == ConversationHandler.END
        assert "task_name" not in context.user_data


# ---------------------------------------------------------------------------
# Inventory and dashboard
# ---------------------------------------------------------------------------


class TestInventoryCommands:
    @pytest.mark.asyncio
    async def test_additem(self):
        from src.bot.telegram_bot import cmd_additem

        service = MagicMock()
        service.add_item.return_value = Item(id="i1", name="Rice", quantity=3, unit="kg")
        update = _make_update("/additem")

        await cmd_additem(update, _make_context(service, args=["Rice", "3", "1", "kg"], member_id="m1"))
        service.add_item.assert_called_once_with(
            name="Rice", quantity=3, min_quantity=1, unit="kg",
        )
        assert _reply_text(update) == "✅ Tracking Rice: 3 kg"

    @pytest.mark.asyncio
    async def test_additem_bad_number(self):
        from src.bot.telegram_bot import cmd_additem

        service = MagicMock()
        update = _make_update("/additem")
        await cmd_additem(update, _make_context(service, args=["Rice", "lots", "1"], member_id="m1"))
        service.add_item.assert_not_called()
        assert _reply_text(update).startswith("⚠️")

    @pytest.mark.asyncio
    async def test_use_warns_when_low(self, service):
        from src.bot.telegram_bot import cmd_use

        item = service.add_item("Milk", 2, min_quantity=1)
        update = _make_update("/use")

        await cmd_use(update, _make_context(service, args=[item.id], member_id="m1"))
        assert service.get_item(item.id).quantity == 1
        assert "Running low" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_use_never_goes_negative(self, service):
        from src.bot.telegram_bot import cmd_use

        item = service.add_item("Milk", 1)
        await cmd_use(_make_update("/use"), _make_context(service, args=[item.id, "5"], member_id="m1"))
        assert service.get_item(item.id).quantity == 0

    @pytest.mark.asyncio
    async def test_restock(self, service):
        from src.bot.telegram_bot import cmd_restock

        item = service.add_item("Milk", 1)
        await cmd_restock(
            _make_update("/restock"), _make_context(service, args=[item.id, "4"], member_id="m1"),
        )
        assert service.get_item(item.id).quantity == 5

    @pytest.mark.asyncio
    async def test_items_empty(self):
        from src.bot.telegram_bot import cmd_items

        service = MagicMock()
        service.list_items.return_value = []
        update = _make_update("/items")
        await cmd_items(update, _make_context(service))
        assert "Nothing tracked" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_stock_commands_require_login(self):
        from src.bot.telegram_bot import cmd_additem, cmd_deleteitem, cmd_restock, cmd_use

        service = MagicMock()
        for handler, args in [
            (cmd_additem, ["Rice", "3", "1"]),
            (cmd_use, ["i1"]),
            (cmd_restock, ["i1"]),
            (cmd_deleteitem, ["i1"]),
        ]:
            update = _make_update()
            await handler(update, _make_context(service, args=args))
            assert "/login" in _reply_text(update)
        service.add_item.assert_not_called()
        service.adjust_item.assert_not_called()
        service.delete_item.assert_not_called()


class TestDashboardCommand:
    @pytest.mark.asyncio
    async def test_summary(self, service):
        from src.bot.telegram_bot import cmd_dashboard

        service.add_member("Alice")
        done = service.add_task("Dishes")
        service.add_task("Laundry")
        service.toggle_task(done.id)
        service.add_item("Milk", 0, unit="l")
        update = _make_update("/dashboard")

        await cmd_dashboard(update, _make_context(service))
        text = _reply_text(update)
        assert "Chores done: 1/2 (50%)" in text
        assert "Milk (0 l)" in text
        assert "Alice" in text
