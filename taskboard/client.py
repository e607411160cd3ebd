"""
HTTP client for the taskboard backend.

Every call returns the decoded `{success, ...}` envelope or raises
BackendError carrying the backend's `{error}` message and HTTP status.
"""
import logging
from typing import Optional, Dict, Any, List

import requests

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when a backend call fails (transport error or non-2xx)."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class BackendClient:
    """HTTP client for the taskboard backend API."""

    def __init__(self, base_url: str = "http://localhost:3002", timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, fallback: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BackendError(f"Network error: unable to reach {url} ({e})") from e

        try:
            body = r.json() if r.content else {}
        except ValueError:
            body = {}

        if not r.ok:
            message = fallback
            if isinstance(body, dict):
                message = body.get("error") or body.get("message") or fallback
            raise BackendError(message, status=r.status_code)
        return body if isinstance(body, dict) else {"success": True, "data": body}

    def trigger_workflow(
        self,
        workflow_slug: str,
        user_email: str,
        distinct_id: str,
        user_name: str,
        event_data: Dict[str, Any],
    ) -> Dict[str, Any]:
        """POST /api/workflow/trigger → {success, messageId}."""
        return self._request(
            "POST",
            "/api/workflow/trigger",
            "Failed to trigger workflow",
            json={
                "workflowSlug": workflow_slug,
                "userEmail": user_email,
                "distinctId": distinct_id,
                "userName": user_name,
                "eventData": event_data,
            },
        )

    def send_otp(self, email: str, user_name: str = "User") -> Dict[str, Any]:
        """POST /api/otp/send → {success, messageId[, otp]}."""
        return self._request(
            "POST", "/api/otp/send", "Failed to send OTP",
            json={"email": email, "userName": user_name},
        )

    def upsert_user(self, distinct_id: str, email: str, name: str = "") -> Dict[str, Any]:
        """POST /api/user/upsert. Creates or updates the notification profile."""
        user_data: Dict[str, Any] = {"$email": [email]}
        if name:
            user_data["name"] = name
        return self._request(
            "POST", "/api/user/upsert", "Failed to create user",
            json={"distinctId": distinct_id, "userData": user_data},
        )

    def get_preferences(self, distinct_id: str) -> Dict[str, Any]:
        """GET /api/user/preferences → the raw preference document."""
        body = self._request(
            "GET", "/api/user/preferences", "Failed to load preferences",
            params={"distinctId": distinct_id},
        )
        return body.get("preferences") or {}

    def verify_otp(self, email: str, otp: str) -> Dict[str, Any]:
        """POST /api/otp/verify. A wrong or expired code is a 400 BackendError."""
        return self._request(
            "POST", "/api/otp/verify", "Failed to verify OTP",
            json={"email": email, "otp": otp},
        )

    def update_category_preference(
        self,
        distinct_id: str,
        category: str,
        preference: str,
        opt_out_channels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """PATCH /api/user/preferences for one category → the updated document."""
        body = self._request(
            "PATCH", "/api/user/preferences", "Failed to update preference",
            json={
                "distinctId": distinct_id,
                "category": category,
                "preference": preference,
                "optOutChannels": list(opt_out_channels or []),
            },
        )
        return body.get("preferences") or {}

    def update_channel_preference(self, distinct_id: str, channel: str, restricted: bool) -> Dict[str, Any]:
        """PATCH /api/user/preferences for one channel across all categories."""
        body = self._request(
            "PATCH", "/api/user/preferences", "Failed to update preference",
            json={"distinctId": distinct_id, "channel": channel, "isRestricted": restricted},
        )
        return body.get("preferences") or {}

    def health(self) -> bool:
        """Check if the backend is reachable."""
        try:
            r = requests.get(f"{self.base_url}/api/health", timeout=2)
            return r.ok
        except requests.RequestException:
            return False
