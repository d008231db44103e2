"""Name-based login with random bearer tokens."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from aura.domain.models import UserProfile, UserRole
from aura.services.gamification_service import GamificationLedger
from aura.utils.config import Settings, get_settings
from aura.utils.logger import get_logger


logger = get_logger(__name__)


class SessionError(Exception):
    """Base authentication failure."""


class InvalidLoginError(SessionError):
    """Raised when a name or residence is missing or unknown."""


class InvalidSessionError(SessionError):
    """Raised when a bearer token does not match an active session."""


@dataclass(frozen=True)
class Session:
    token: str
    user: UserProfile


class SessionService:
    """Issues tokens for named users; there is no password, only identity.

    The configured admin name (case-insensitive) logs in as the single
    administrator, who has no residence.
    """

    def __init__(
        self,
        ledger: GamificationLedger,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._ledger = ledger
        self._sessions: dict[str, str] = {}
        self._lock = Lock()

    def is_admin_name(self, name: str) -> bool:
        return name.strip().lower() == self._settings.admin_name.lower()

    def login(self, name: str, residence: str) -> Session:
        cleaned = name.strip()
        if not cleaned:
            raise InvalidLoginError("name must not be empty")

        if self.is_admin_name(cleaned):
            user = self._ledger.register(self._settings.admin_name, "", UserRole.ADMIN)
        else:
            residence = residence.strip()
            if residence not in self._settings.residences:
                raise InvalidLoginError(f"unknown residence '{residence}'")
            user = self._ledger.register(cleaned, residence, UserRole.STUDENT)
            if user.residence != residence:
                raise InvalidLoginError(
                    f"'{cleaned}' is already registered in residence '{user.residence}'"
                )

        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = user.name
        logger.info("User logged in | user=%s | role=%s | residence=%s", user.name, user.role.value, user.residence)
        return Session(token=token, user=user)

    def resolve(self, bearer_token: str) -> UserProfile:
        with self._lock:
            match = None
            for token, name in self._sessions.items():
                if secrets.compare_digest(bearer_token.encode(), token.encode()):
                    match = name
                    break
        if match is None:
            raise InvalidSessionError("Invalid bearer token")
        return self._ledger.get_user(match)

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            if self._sessions.pop(bearer_token, None) is None:
                raise InvalidSessionError("No active session for token")
