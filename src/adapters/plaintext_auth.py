"""Plaintext credential adapter — implements Authenticator.

Compares the given name and secret with the values stored in the member
table. No hashing, lockout or rate limiting; swap this adapter out before
exposing the household to anyone untrusted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.data.db import MemberDB
    from src.data.models import Member

logger = logging.getLogger(__name__)


class PlaintextAuthenticator:
    """Equality check against MemberDB credentials."""

    def __init__(self, member_db: MemberDB) -> None:
        self._member_db = member_db

    def authenticate(self, name: str, secret: str) -> Member | None:
        member = self._member_db.find_by_credentials(name.strip(), secret)
        if member is None:
            logger.warning("Failed login attempt for member name '%s'", name)
        return member
