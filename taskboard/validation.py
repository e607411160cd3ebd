"""
Input sanitization and form validation.

Forms (task modal, sign-in, sign-up) reject bad input here before any
mutation or network call. Errors are collected per field so a caller can
render them inline.
"""
import html
import re
from typing import Dict, Any, Optional

from .schema import (
    TaskPriority,
    TaskStatus,
    MAX_TITLE,
    MAX_DESCRIPTION,
    MAX_NAME,
    MAX_EMAIL,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
TAG_RE = re.compile(r"<[^>]*>")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
OTP_RE = re.compile(r"^\d{6}$")
MIN_PASSWORD = 6


class ValidationError(Exception):
    """Raised when form input fails validation. `errors` maps field → message."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))


def sanitize_text(value: Any) -> str:
    """Strip HTML tags and decode entities."""
    if not isinstance(value, str):
        return ""
    return TAG_RE.sub("", html.unescape(value))


def _bounded(value: Any, limit: int) -> str:
    text = sanitize_text(value).strip()
    return text[:limit]


def sanitize_title(value: Any) -> str:
    return _bounded(value, MAX_TITLE)


def sanitize_description(value: Any) -> str:
    return _bounded(value, MAX_DESCRIPTION)


def sanitize_name(value: Any) -> str:
    return _bounded(value, MAX_NAME)


def sanitize_email(value: Any) -> str:
    """Lowercased, trimmed email, or "" if it isn't one."""
    if not isinstance(value, str):
        return ""
    email = value.strip().lower()
    if len(email) > MAX_EMAIL or not EMAIL_RE.match(email):
        return ""
    return email


def sanitize_otp(value: Any) -> str:
    """Digits only, at most 6."""
    if not isinstance(value, str):
        return ""
    return re.sub(r"\D", "", value)[:6]


def is_email_address(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def extract_name_from_email(value: str) -> str:
    """'jane.doe@x.io' → 'Jane Doe'. Non-emails are returned unchanged."""
    if not is_email_address(value):
        return value
    local = value.strip().split("@")[0]
    return " ".join(part[:1].upper() + part[1:] for part in local.split("."))


def clean_task_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Sanitize and validate task form fields.

    With partial=True only the supplied keys are checked (edit form);
    otherwise title is required (create form).

    Returns:
        dict of cleaned fields using Task attribute names.

    Raises:
        ValidationError with per-field messages.
    """
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    if "title" in fields or not partial:
        title = sanitize_title(fields.get("title"))
        if not title:
            errors["title"] = "Title is required"
        cleaned["title"] = title

    if "description" in fields:
        cleaned["description"] = sanitize_description(fields.get("description"))

    if "priority" in fields and fields["priority"] is not None:
        raw = str(fields["priority"]).lower()
        if raw not in {p.value for p in TaskPriority}:
            errors["priority"] = "Priority must be one of: low, medium, high"
        cleaned["priority"] = TaskPriority.from_str(raw)

    due = fields.get("due_date", fields.get("dueDate"))
    if "due_date" in fields or "dueDate" in fields:
        due = (due or "").strip()
        if due and not DATE_RE.match(due):
            errors["due_date"] = "Due date must be YYYY-MM-DD"
        cleaned["due_date"] = due

    if "status" in fields and fields["status"] is not None:
        raw = fields["status"].value if isinstance(fields["status"], TaskStatus) else str(fields["status"])
        if raw not in {s.value for s in TaskStatus}:
            errors["status"] = f"Unknown status: {raw}"
        cleaned["status"] = TaskStatus.from_str(raw)

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_credentials(email: str, password: str, name: Optional[str] = None,
                         signup: bool = False) -> Dict[str, str]:
    """Validate sign-in / sign-up form fields. Returns cleaned email and name."""
    errors: Dict[str, str] = {}
    clean_email = sanitize_email(email)
    if not (email or "").strip():
        errors["email"] = "Email is required"
    elif not clean_email:
        errors["email"] = "Please enter a valid email address"

    if not (password or "").strip():
        errors["password"] = "Password is required"
    elif signup and len(password) < MIN_PASSWORD:
        errors["password"] = f"Password must be at least {MIN_PASSWORD} characters long"

    if errors:
        raise ValidationError(errors)
    return {"email": clean_email, "name": sanitize_name(name) if name else ""}


def validate_otp(email: str, code: str) -> Dict[str, str]:
    """Validate the verification-code form. Returns cleaned email and 6-digit code."""
    errors: Dict[str, str] = {}
    clean_email = sanitize_email(email)
    if not clean_email:
        errors["email"] = "Please enter a valid email address"

    otp = sanitize_otp(code)
    if not (code or "").strip():
        errors["otp"] = "OTP is required"
    elif not OTP_RE.match(otp):
        errors["otp"] = "Please enter the 6-digit code from your email"

    if errors:
        raise ValidationError(errors)
    return {"email": clean_email, "otp": otp}
