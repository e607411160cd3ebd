"""
Sign-up / sign-in and the persisted current session.

Accounts live in a local registry (demo-grade auth, no server side). The
notification profile is upserted to the backend on sign-up; that call is
best-effort and never blocks account creation.
"""
import hashlib
import hmac
import json
import logging
import secrets
from typing import Dict, Any, Optional

from .client import BackendClient, BackendError
from .schema import UserSession, utc_now
from .storage import LocalStorage, StorageError
from .store import tasks_key
from .validation import validate_credentials, validate_otp, sanitize_name, extract_name_from_email

logger = logging.getLogger(__name__)

USERS_KEY = "task_mgmt_users"
SESSION_KEY = "current_user"
PBKDF2_ROUNDS = 100_000


class AuthError(Exception):
    """Raised when sign-in or sign-up is refused."""
    pass


def hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ROUNDS)
    return digest.hex()


class SessionManager:
    """Owns the local user registry and the current-session slot."""

    def __init__(self, storage: LocalStorage, client: Optional[BackendClient] = None):
        self.storage = storage
        self.client = client

    def _users(self) -> Dict[str, Any]:
        try:
            raw = self.storage.get_item(USERS_KEY)
            users = json.loads(raw) if raw else {}
        except (StorageError, json.JSONDecodeError) as e:
            logger.error(f"Error loading users: {e}")
            return {}
        return users if isinstance(users, dict) else {}

    def _save_users(self, users: Dict[str, Any]) -> None:
        try:
            self.storage.set_item(USERS_KEY, json.dumps(users))
        except StorageError as e:
            logger.error(f"Error saving users: {e}")

    def _persist(self, session: UserSession) -> None:
        try:
            self.storage.set_item(SESSION_KEY, json.dumps(session.to_dict()))
        except StorageError as e:
            logger.warning(f"Session not persisted: {e}")

    def sign_up(self, name: str, email: str, password: str) -> UserSession:
        """
        Register a new account and start a session.

        Raises:
            ValidationError on bad form input, AuthError if the account exists.
        """
        cleaned = validate_credentials(email, password, name=name, signup=True)
        distinct_id = cleaned["email"]

        users = self._users()
        if distinct_id in users:
            raise AuthError("User already exists with this email or ID")

        salt = secrets.token_hex(16)
        users[distinct_id] = {
            "id": distinct_id,
            "name": cleaned["name"] or None,
            "email": distinct_id,
            "salt": salt,
            "passwordHash": hash_password(password, salt),
            "createdAt": utc_now(),
        }
        self._save_users(users)

        if self.client is not None:
            try:
                self.client.upsert_user(distinct_id, distinct_id, cleaned["name"])
            except BackendError as e:
                logger.warning(f"Could not add user to notification service: {e}")

        session = UserSession(distinct_id=distinct_id, email=distinct_id, name=cleaned["name"] or "User")
        self._persist(session)
        logger.info(f"Signed up {distinct_id}")
        return session

    def sign_in(self, email: str, password: str) -> UserSession:
        """
        Check credentials and start a session.

        Raises:
            ValidationError on bad form input, AuthError on wrong credentials.
        """
        cleaned = validate_credentials(email, password)
        user = self._users().get(cleaned["email"])
        if not user:
            raise AuthError("Invalid email/ID or password")

        expected = user.get("passwordHash", "")
        actual = hash_password(password, user.get("salt", ""))
        if not hmac.compare_digest(expected, actual):
            raise AuthError("Invalid email/ID or password")

        session = UserSession(
            distinct_id=user["id"],
            email=user.get("email") or user["id"],
            name=user.get("name") or "User",
        )
        self._persist(session)
        logger.info(f"Signed in {session.distinct_id}")
        return session

    def verify_code(self, email: str, code: str, name: str = "") -> UserSession:
        """
        Passwordless sign-in: check an emailed one-time code and start a session.

        The display name is taken from the local account if there is one,
        else from `name`, else derived from the email address.

        Raises:
            ValidationError on a malformed email or code, AuthError if the
            code is wrong or expired.
        """
        cleaned = validate_otp(email, code)
        distinct_id = cleaned["email"]
        if self.client is None:
            raise AuthError("Code sign-in needs the notification backend")

        try:
            self.client.verify_otp(distinct_id, cleaned["otp"])
        except BackendError as e:
            if e.status == 400:
                raise AuthError("Invalid OTP. Please check your email and try again.") from e
            raise

        account = self._users().get(distinct_id) or {}
        display = account.get("name") or sanitize_name(name) or extract_name_from_email(distinct_id)

        try:
            self.client.upsert_user(distinct_id, distinct_id, display)
        except BackendError as e:
            logger.warning(f"Could not add user to notification service: {e}")

        session = UserSession(distinct_id=distinct_id, email=distinct_id, name=display or "User")
        self._persist(session)
        logger.info(f"Signed in {distinct_id} with a one-time code")
        return session

    def current(self) -> Optional[UserSession]:
        """Restore the persisted session, or None."""
        try:
            raw = self.storage.get_item(SESSION_KEY)
            if not raw:
                return None
            return UserSession.from_dict(json.loads(raw))
        except (StorageError, json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable session: {e}")
            return None

    def sign_out(self) -> Optional[UserSession]:
        """End the session and discard that user's task collection."""
        session = self.current()
        try:
            if session is not None:
                self.storage.remove_item(tasks_key(session.distinct_id))
            self.storage.remove_item(SESSION_KEY)
        except StorageError as e:
            logger.warning(f"Sign-out cleanup failed: {e}")
        return session
