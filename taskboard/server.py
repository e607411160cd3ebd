#!/usr/bin/env python3
"""
Taskboard Backend Server
------------------------
Thin proxy between the taskboard client and the SuprSend API. Keeps the
SuprSend API key server-side, and holds the one-time codes it emails until
they are verified.

Usage:
    export SUPRSEND_API_KEY=... SUPRSEND_WORKSPACE=...
    taskboard-server --port 3002

API:
    POST  /api/workflow/trigger   → { success, messageId }
    POST  /api/otp/send           → { success, messageId[, otp] }
    POST  /api/otp/verify         → { success, verified }
    POST  /api/user/upsert        → { success, message } | upstream body
    GET   /api/user/preferences   → { success, preferences }
    PATCH /api/user/preferences   → { success, preferences }
    GET   /api/health             → { status, timestamp }

Failures: non-2xx with { error }.
"""

import hmac
import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Any, List

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

from .config import LOG_FORMAT
from .suprsend import SuprSendClient, SuprSendError, generate_otp, recipient
from .validation import EMAIL_RE, OTP_RE

load_dotenv()

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": os.environ.get("FRONTEND_URL", "*")}})

REQUIRED_ENV = ("SUPRSEND_API_KEY", "SUPRSEND_WORKSPACE")
PREFERENCE_VALUES = ("opt_in", "opt_out")
OTP_TTL_SECONDS = 600
OTP_MAX_ATTEMPTS = 5
INVALID_OTP = "Invalid OTP. Please check your email and try again."


class PendingCodes:
    """Outstanding one-time codes, one per email, kept in process memory."""

    def __init__(self, ttl: float = OTP_TTL_SECONDS, max_attempts: int = OTP_MAX_ATTEMPTS):
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._codes: Dict[str, List[Any]] = {}  # email -> [code, expires_at, failed_attempts]
        self._lock = threading.Lock()

    def put(self, email: str, code: str) -> None:
        with self._lock:
            self._codes[email.lower()] = [code, time.monotonic() + self.ttl, 0]

    def check(self, email: str, code: str) -> bool:
        """True once per issued code. Expired or over-guessed codes are dropped."""
        key = email.lower()
        with self._lock:
            entry = self._codes.get(key)
            if entry is None:
                return False
            stored, expires_at, attempts = entry
            if time.monotonic() > expires_at or attempts >= self.max_attempts:
                del self._codes[key]
                return False
            if hmac.compare_digest(stored, code):
                del self._codes[key]
                return True
            entry[2] += 1
            return False


pending_codes = PendingCodes()


# ── Config ───────────────────────────────────────────────────────────────────

def missing_env() -> list:
    return [name for name in REQUIRED_ENV if not os.environ.get(name)]


def get_client() -> SuprSendClient:
    return SuprSendClient(
        os.environ["SUPRSEND_API_KEY"],
        base_url=os.environ.get("SUPRSEND_BASE_URL", "https://hub.suprsend.com"),
    )


def is_development() -> bool:
    return os.environ.get("FLASK_ENV", os.environ.get("NODE_ENV", "")) == "development"


def json_body() -> Dict[str, Any]:
    """Request JSON as a dict; anything else counts as an empty body."""
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def proxy_route(failure_message):
    """Decorator: require SuprSend env, map upstream and unexpected errors to { error }."""
    def wrap(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            missing = missing_env()
            if missing:
                app.logger.error(f"Missing required environment variables: {', '.join(missing)}")
                return jsonify({"error": failure_message}), 500
            try:
                return f(*args, **kwargs)
            except SuprSendError as e:
                app.logger.warning(f"{request.path} upstream error ({e.status}): {e}")
                return jsonify({"error": str(e)}), e.status
            except Exception:
                app.logger.exception(f"{request.path} failed")
                return jsonify({"error": failure_message}), 500
        return decorated
    return wrap


# ── Routes ───────────────────────────────────────────────────────────────────

@app.route("/api/workflow/trigger", methods=["POST"])
@proxy_route("Failed to trigger workflow. Please try again.")
def api_trigger_workflow():
    data = json_body()
    slug = data.get("workflowSlug")
    user_email = data.get("userEmail")
    distinct_id = data.get("distinctId")
    if not slug or not user_email or not distinct_id:
        return jsonify({"error": "Missing required fields"}), 400

    event_data = data.get("eventData")
    result = get_client().trigger(
        slug,
        [recipient(distinct_id, user_email, data.get("userName") or "User", ["email", "inbox"])],
        event_data if isinstance(event_data, dict) else {},
    )
    app.logger.info(f"Triggered {slug} for {distinct_id}")
    return jsonify({"success": True, "messageId": result.get("message_id")})


@app.route("/api/otp/send", methods=["POST"])
@proxy_route("Failed to send OTP. Please try again.")
def api_send_otp():
    data = json_body()
    email = str(data.get("email") or "").strip()
    user_name = data.get("userName") or "User"
    if not email or not EMAIL_RE.match(email):
        return jsonify({"error": "Valid email is required"}), 400

    otp = generate_otp()
    slug = os.environ.get("OTP_WORKFLOW_SLUG", "otp_verification")
    result = get_client().trigger(
        slug,
        [recipient(email, email, user_name, ["email"])],
        {"code": otp, "otp": otp, "user_name": user_name},
    )
    pending_codes.put(email, otp)
    body = {"success": True, "messageId": result.get("message_id")}
    if is_development():
        body["otp"] = otp
    return jsonify(body)


@app.route("/api/otp/verify", methods=["POST"])
def api_verify_otp():
    data = json_body()
    email = str(data.get("email") or "").strip()
    otp = str(data.get("otp") or "").strip()
    if not email or not EMAIL_RE.match(email):
        return jsonify({"error": "Valid email is required"}), 400
    if not OTP_RE.match(otp):
        return jsonify({"error": "A 6-digit code is required"}), 400
    if not pending_codes.check(email, otp):
        app.logger.info(f"Rejected verification code for {email}")
        return jsonify({"error": INVALID_OTP}), 400
    return jsonify({"success": True, "verified": True})


@app.route("/api/user/upsert", methods=["POST"])
@proxy_route("Failed to create user. Please try again.")
def api_upsert_user():
    data = json_body()
    distinct_id = data.get("distinctId")
    user_data = data.get("userData")
    if not distinct_id or not isinstance(user_data, dict) or not user_data:
        return jsonify({"error": "distinctId and userData are required"}), 400

    profile = {}
    if user_data.get("name"):
        profile["name"] = user_data["name"]
    if user_data.get("$email"):
        profile["$email"] = user_data["$email"]
    if not profile.get("$email"):
        return jsonify({"error": "Email is required to create user"}), 400

    result = get_client().upsert_user(distinct_id, profile)
    if not result:
        return jsonify({"success": True, "message": "User created successfully"})
    return jsonify(result)


@app.route("/api/user/preferences", methods=["GET"])
@proxy_route("Failed to load preferences. Please try again.")
def api_user_preferences():
    distinct_id = request.args.get("distinctId", "").strip()
    if not distinct_id:
        return jsonify({"error": "distinctId is required"}), 400
    return jsonify({"success": True, "preferences": get_client().get_preferences(distinct_id)})


@app.route("/api/user/preferences", methods=["PATCH"])
@proxy_route("Failed to update preferences. Please try again.")
def api_update_preferences():
    """
    Two shapes:
        { distinctId, category, preference, optOutChannels? }  one category
        { distinctId, channel, isRestricted }                  one channel, all categories
    """
    data = json_body()
    distinct_id = data.get("distinctId")
    if not distinct_id:
        return jsonify({"error": "distinctId is required"}), 400

    if data.get("category"):
        preference = data.get("preference")
        opt_out = data.get("optOutChannels") or []
        if preference not in PREFERENCE_VALUES:
            return jsonify({"error": "preference must be opt_in or opt_out"}), 400
        if not isinstance(opt_out, list) or not all(isinstance(c, str) for c in opt_out):
            return jsonify({"error": "optOutChannels must be a list of channel names"}), 400
        result = get_client().update_category_preference(
            distinct_id, str(data["category"]), preference, opt_out
        )
    elif data.get("channel"):
        restricted = data.get("isRestricted")
        if not isinstance(restricted, bool):
            return jsonify({"error": "isRestricted must be true or false"}), 400
        result = get_client().update_channel_preference(distinct_id, str(data["channel"]), restricted)
    else:
        return jsonify({"error": "category or channel is required"}), 400

    app.logger.info(f"Updated preferences for {distinct_id}")
    return jsonify({"success": True, "preferences": result})


@app.route("/api/health")
def health():
    return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})


# ── Main ─────────────────────────────────────────────────────────────────────

def main():
    import argparse

    parser = argparse.ArgumentParser(description="Taskboard backend server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 3002)))
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT,
                        handlers=[logging.StreamHandler(sys.stdout)])

    missing = missing_env()
    if missing:
        print(f"Missing required environment variables: {', '.join(missing)}", file=sys.stderr)
        print("Set them in the environment or a .env file:", file=sys.stderr)
        for name in missing:
            print(f"  {name}=...", file=sys.stderr)
        sys.exit(1)

    print(f"""
╔═══════════════════════════════════════╗
║  Taskboard Backend                    ║
╠═══════════════════════════════════════╣
║  URL:  http://{args.host}:{args.port:<20}║
║  Env:  {('development' if is_development() else 'production'):<31}║
╚═══════════════════════════════════════╝
""")
    app.run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
