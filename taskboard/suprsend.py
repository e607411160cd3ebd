"""
Minimal SuprSend REST client used by the backend server.

Only the calls the app needs: trigger a workflow, upsert a user profile,
and read or update a user's notification preferences.
"""
import secrets
import time
from typing import Optional, Dict, Any, List
from urllib.parse import quote

import requests

SUPRSEND_URL = "https://hub.suprsend.com"


class SuprSendError(Exception):
    """Raised when SuprSend rejects a request or is unreachable."""

    def __init__(self, message: str, status: int = 502):
        self.status = status
        super().__init__(message)


def generate_otp() -> str:
    """Cryptographically secure 6-digit code."""
    return f"{secrets.randbelow(1_000_000):06d}"


def idempotency_key() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def recipient(distinct_id: str, email: str, name: str, channels: List[str]) -> Dict[str, Any]:
    return {
        "distinct_id": distinct_id,
        "$email": [email],
        "name": name or "User",
        "$channels": channels,
        "$skip_create": False,
    }


class SuprSendClient:
    """HTTP client for the SuprSend hub API."""

    def __init__(self, api_key: str, base_url: str = SUPRSEND_URL, timeout: float = 10):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _call(self, method: str, path: str, fallback: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """Returns decoded JSON, or None for an empty body."""
        try:
            r = requests.request(
                method,
                f"{self.base_url}{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SuprSendError(f"SuprSend unreachable: {e}") from e

        text = r.text.strip() if r.text else ""
        data = None
        if text:
            try:
                data = r.json()
            except ValueError:
                data = {"message": text}

        if not r.ok:
            message = fallback
            if isinstance(data, dict):
                message = data.get("message") or data.get("error") or fallback
            raise SuprSendError(message, status=r.status_code)
        return data

    def trigger(self, workflow: str, recipients: List[Dict[str, Any]], data: Dict[str, Any]) -> Dict[str, Any]:
        """Trigger a workflow. Returns the upstream response (may be {})."""
        result = self._call("POST", "/trigger/", "Workflow trigger failed", {
            "workflow": workflow,
            "idempotency_key": idempotency_key(),
            "recipients": recipients,
            "data": data or {},
        })
        return result if isinstance(result, dict) else {}

    def upsert_user(self, distinct_id: str, profile: Dict[str, Any]) -> Optional[Any]:
        return self._call(
            "POST", f"/v1/user/{quote(distinct_id, safe='')}/", "SuprSend API error", profile
        )

    def get_preferences(self, distinct_id: str) -> Dict[str, Any]:
        result = self._call(
            "GET", f"/v1/user/{quote(distinct_id, safe='')}/preference/", "Failed to load preferences"
        )
        return result if isinstance(result, dict) else {}

    def update_category_preference(
        self,
        distinct_id: str,
        category: str,
        preference: str,
        opt_out_channels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Opt a user in or out of one category, optionally muting some of its channels."""
        result = self._call(
            "PATCH",
            f"/v1/user/{quote(distinct_id, safe='')}/preference/category/{quote(category, safe='')}/",
            "Failed to update preference",
            {"preference": preference, "opt_out_channels": opt_out_channels or []},
        )
        return result if isinstance(result, dict) else {}

    def update_channel_preference(self, distinct_id: str, channel: str, is_restricted: bool) -> Dict[str, Any]:
        """Switch a channel on or off across all categories."""
        result = self._call(
            "PATCH",
            f"/v1/user/{quote(distinct_id, safe='')}/preference/channel_preference/",
            "Failed to update preference",
            {"channel_preferences": [{"channel": channel, "is_restricted": is_restricted}]},
        )
        return result if isinstance(result, dict) else {}
