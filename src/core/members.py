"""Household member rules — pure business logic.

The member store enforces nothing, so every admin / removal check lives
here and runs before the store is touched.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Sequence

from src.core.errors import InvalidState, NotFound, ValidationError

if TYPE_CHECKING:
    from src.data.models import Member


def find_member(members: Sequence[Member], member_id: str) -> Member:
    """Return the member with ``member_id`` or raise NotFound."""
    for member in members:
        if member.id == member_id:
            return member
    raise NotFound(f"Member {member_id} not found")


def validate_member_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Member name is required")
    return cleaned


def toggle_admin(
    members: Sequence[Member], member_id: str, acting_member_id: str,
) -> list[Member]:
    """Flip the admin flag of ``member_id``.

    Only an admin may do this, and the last admin cannot be demoted.
    """
    actor = find_member(members, acting_member_id)
    if not actor.is_admin:
        raise InvalidState("Only an admin can change admin rights")

    target = find_member(members, member_id)
    admins = [m for m in members if m.is_admin]
    if target.is_admin and len(admins) == 1:
        raise InvalidState(
            "Cannot remove the last admin. Make another member admin first."
        )

    return [
        replace(m, is_admin=not m.is_admin) if m.id == member_id else m
        for m in members
    ]


def check_removal(
    members: Sequence[Member], member_id: str, acting_member_id: str,
) -> Member:
    """Validate that ``acting_member_id`` may remove ``member_id``.

    Returns the member to be removed.
    """
    target = find_member(members, member_id)
    if member_id == acting_member_id:
        raise InvalidState("You cannot remove yourself")
    if len(members) == 1:
        raise InvalidState("Cannot remove the only member of the household")
    admins = [m for m in members if m.is_admin]
    if target.is_admin and len(admins) == 1:
        raise InvalidState(
            "Cannot remove the last admin. Make another member admin first."
        )
    return target


def remove_member(
    members: Sequence[Member], member_id: str, acting_member_id: str,
) -> list[Member]:
    """Return ``members`` without ``member_id`` after the removal checks."""
    check_removal(members, member_id, acting_member_id)
    return [m for m in members if m.id != member_id]
