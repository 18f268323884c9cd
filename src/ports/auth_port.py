"""Auth port — maps a (name, secret) pair to a household member.

Kept narrow so the credential check can be replaced without touching
the core or the bot.
"""

from __future__ import annotations

from typing import Protocol

from src.data.models import Member


class Authenticator(Protocol):
    """Abstract credential check used by the service layer."""

    def authenticate(self, name: str, secret: str) -> Member | None: ...
