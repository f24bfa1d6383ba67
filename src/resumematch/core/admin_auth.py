from __future__ import annotations

import hmac
import logging
import math
from datetime import datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from resumematch.config import AdminPolicy
from resumematch.db.kv import KeyValueStore
from resumematch.errors import AuthError
from resumematch.types import AdminSession, AuthResult, LoginAttempt, utcnow

logger = logging.getLogger(__name__)


class AdminAuth:
    """Password gate for privileged commands, with attempt counting and cooldown."""

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        environment: str,
        password: str,
        policy: AdminPolicy,
    ):
        self.kv = kv
        self.environment = environment
        self.password = password
        self.policy = policy

    def is_auth_required(self) -> bool:
        return self.policy.auth_required

    def auth_required_message(self) -> str:
        if not self.policy.auth_required:
            return ""
        return "Admin authentication required. Please log in with the admin password first."

    def is_authenticated(self, owner_id: str, *, now: datetime | None = None) -> bool:
        if not self.policy.auth_required:
            return True

        session = self.get_session_info(owner_id)
        if session is None:
            return False
        if (now or utcnow()) > session.expires_at:
            self.kv.delete(self._session_key(owner_id))
            return False
        return True

    def require_admin(self, owner_id: str | None) -> None:
        if not self.policy.auth_required:
            return
        if owner_id is None or not self.is_authenticated(owner_id):
            raise AuthError(self.auth_required_message())

    def authenticate(
        self,
        owner_id: str,
        context_id: str,
        password: str,
        *,
        now: datetime | None = None,
    ) -> AuthResult:
        now = now or utcnow()
        if not self.policy.auth_required:
            return AuthResult(success=True, message="Authentication not required in this environment")
        if not self.password:
            return AuthResult(success=False, message="Admin password not configured")

        remaining = self._cooldown_remaining_minutes(owner_id, now)
        if remaining:
            logger.info("Admin login rejected during cooldown owner_id=%s remaining_min=%s", owner_id, remaining)
            return AuthResult(
                success=False,
                message=f"Too many login attempts. Please wait {remaining} minutes.",
                cooldown_minutes=remaining,
            )

        if not hmac.compare_digest(password.encode("utf-8"), self.password.encode("utf-8")):
            attempt = self._record_failed_attempt(owner_id, now)
            remaining_attempts = self.policy.max_login_attempts - attempt.attempts
            logger.warning("Admin login failed owner_id=%s attempts=%s", owner_id, attempt.attempts)
            if remaining_attempts <= 0:
                return AuthResult(
                    success=False,
                    message=(
                        "Invalid password. Maximum attempts reached. "
                        f"Please wait {self.policy.login_cooldown_minutes} minutes."
                    ),
                    cooldown_minutes=self.policy.login_cooldown_minutes,
                    remaining_attempts=0,
                )
            return AuthResult(
                success=False,
                message=f"Invalid password. {remaining_attempts} attempts remaining.",
                remaining_attempts=remaining_attempts,
            )

        self._create_session(owner_id, context_id, now)
        self.kv.delete(self._attempts_key(owner_id))
        logger.info("Admin authenticated owner_id=%s environment=%s", owner_id, self.environment)
        return AuthResult(
            success=True,
            message=(
                "Admin authenticated successfully! "
                f"Access granted for {self.policy.session_timeout_hours} hours."
            ),
        )

    def logout(self, owner_id: str) -> AuthResult:
        self.kv.delete(self._session_key(owner_id))
        return AuthResult(success=True, message="Logged out successfully")

    def get_session_info(self, owner_id: str) -> AdminSession | None:
        stored = self.kv.get(self._session_key(owner_id))
        if not stored:
            return None
        try:
            return AdminSession.model_validate_json(stored)
        except PydanticValidationError as exc:
            logger.error("Unreadable admin session owner_id=%s error=%s", owner_id, exc)
            return None

    def get_login_attempt(self, owner_id: str) -> LoginAttempt | None:
        stored = self.kv.get(self._attempts_key(owner_id))
        if not stored:
            return None
        try:
            return LoginAttempt.model_validate_json(stored)
        except PydanticValidationError as exc:
            logger.error("Unreadable login attempt record owner_id=%s error=%s", owner_id, exc)
            return None

    def _create_session(self, owner_id: str, context_id: str, now: datetime) -> None:
        ttl = timedelta(hours=self.policy.session_timeout_hours)
        session = AdminSession(
            owner_id=owner_id,
            context_id=context_id,
            environment=self.environment,
            authenticated_at=now,
            expires_at=now + ttl,
        )
        self.kv.put(self._session_key(owner_id), session.model_dump_json(), ttl_seconds=int(ttl.total_seconds()))

    def _cooldown_remaining_minutes(self, owner_id: str, now: datetime) -> int:
        attempt = self.get_login_attempt(owner_id)
        if attempt is None or attempt.cooldown_until is None or now >= attempt.cooldown_until:
            return 0
        return math.ceil((attempt.cooldown_until - now).total_seconds() / 60)

    def _record_failed_attempt(self, owner_id: str, now: datetime) -> LoginAttempt:
        attempt = self.get_login_attempt(owner_id)
        if attempt is None or (attempt.cooldown_until is not None and now >= attempt.cooldown_until):
            attempt = LoginAttempt(owner_id=owner_id, attempts=0)

        attempt.attempts += 1
        attempt.last_attempt_at = now
        if attempt.attempts >= self.policy.max_login_attempts:
            attempt.cooldown_until = now + timedelta(minutes=self.policy.login_cooldown_minutes)

        self.kv.put(
            self._attempts_key(owner_id),
            attempt.model_dump_json(),
            ttl_seconds=self.policy.login_cooldown_minutes * 60,
        )
        return attempt

    def _session_key(self, owner_id: str) -> str:
        return f"admin_session:{owner_id}:{self.environment}"

    def _attempts_key(self, owner_id: str) -> str:
        return f"login_attempts:{owner_id}:{self.environment}"
