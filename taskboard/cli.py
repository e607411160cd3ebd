"""Command-line client for the task board.

Stands in for the browser UI: account forms, the task form, the board
itself and the notification preferences page. `move` walks the same drag sequence a pointer would
(drag_start → drag_over → drop).
"""
import argparse
import logging
import sys
from typing import Optional, List, Dict, Any

from .board import BoardController
from .client import BackendClient, BackendError
from .config import Config, ConfigError, LOG_FORMAT
from .notify import NotificationDispatcher, WorkflowSlugs
from .preferences import (
    OPT_IN,
    OPT_OUT,
    PreferenceGate,
    find_subcategory,
    opted_out_channels,
    should_notify,
    task_subcategories,
)
from .schema import COLUMNS, TaskStatus, UserSession
from .session import SessionManager, AuthError
from .storage import LocalStorage
from .store import TaskStore
from .validation import ValidationError

logger = logging.getLogger(__name__)

COLUMN_ALIASES = {
    "t": TaskStatus.TODO,
    "todo": TaskStatus.TODO,
    "ip": TaskStatus.IN_PROGRESS,
    "in-progress": TaskStatus.IN_PROGRESS,
    "r": TaskStatus.IN_REVIEW,
    "in-review": TaskStatus.IN_REVIEW,
    "review": TaskStatus.IN_REVIEW,
    "c": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "completed": TaskStatus.COMPLETED,
}

PRIORITY_MARK = {"high": "!!", "medium": "!", "low": "."}


class App:
    """Wires config, storage, session and board together for one invocation."""

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self.storage = LocalStorage(cfg.storage_path, quota_bytes=cfg.storage_quota_bytes)
        self.client = BackendClient(cfg.backend_url, timeout=cfg.request_timeout)
        self.sessions = SessionManager(self.storage, self.client)
        self.gate = PreferenceGate(self.client.get_preferences, cache_ttl=cfg.preference_cache_ttl)
        self.dispatcher = NotificationDispatcher(
            self.client,
            self.gate,
            slugs=WorkflowSlugs.from_dict(cfg.workflows),
            app_url=cfg.app_url,
        )

    def board(self, user: UserSession) -> BoardController:
        board = BoardController(TaskStore(self.storage, user.distinct_id), self.dispatcher, user)
        board.subscribe("warning", lambda message, error: print(f"warning: {message}", file=sys.stderr))
        return board

    def require_user(self) -> UserSession:
        user = self.sessions.current()
        if user is None:
            raise AuthError("Not signed in. Run `taskboard signin` first.")
        return user


def parse_column(value: str) -> TaskStatus:
    column = COLUMN_ALIASES.get(value.strip().lower())
    if column is None:
        choices = ", ".join(sorted(COLUMN_ALIASES))
        raise argparse.ArgumentTypeError(f"unknown column {value!r} (choose from {choices})")
    return column


def render_board(board: BoardController) -> str:
    columns = board.tasks_by_column()
    lines = []
    for status, header in COLUMNS:
        tasks = columns[status]
        lines.append(f"{header} ({len(tasks)})")
        if not tasks:
            lines.append("  -")
        for task in tasks:
            due = f"  due {task.due_date}" if task.due_date else ""
            mark = PRIORITY_MARK.get(task.priority.value, "")
            lines.append(f"  [{task.id}] {mark} {task.title}{due}")
        lines.append("")
    return "\n".join(lines).rstrip()


def render_preferences(document: Dict[str, Any]) -> str:
    try:
        subs = list(task_subcategories(document or {}))
    except (AttributeError, TypeError):
        subs = []

    lines = [f"Task notifications: {'on' if should_notify(document) else 'off'}", "", "Categories"]
    if not subs:
        lines.append("  -")
    for sub in subs:
        muted = set(opted_out_channels(sub))
        channels = [
            f"{c['channel']}:{'off' if c['channel'] in muted else 'on'}"
            for c in sub.get("channels") or [] if isinstance(c, dict) and c.get("channel")
        ]
        label = sub.get("category") or sub.get("name")
        lines.append(f"  [{sub.get('preference') or '-'}] {label}  {' '.join(channels)}".rstrip())

    overall = (document or {}).get("channel_preferences") or []
    if isinstance(overall, list) and overall:
        lines += ["", "Channels"]
        for c in overall:
            if isinstance(c, dict) and c.get("channel"):
                lines.append(f"  {c['channel']}: {'off' if c.get('is_restricted') else 'on'}")
    return "\n".join(lines)


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_signup(app: App, args) -> int:
    user = app.sessions.sign_up(args.name or "", args.email, args.password)
    print(f"Welcome, {user.name} ({user.distinct_id})")
    return 0


def cmd_signin(app: App, args) -> int:
    user = app.sessions.sign_in(args.email, args.password)
    print(f"Signed in as {user.name} ({user.distinct_id})")
    return 0


def cmd_signout(app: App, args) -> int:
    user = app.sessions.sign_out()
    print(f"Signed out {user.distinct_id}" if user else "No active session")
    return 0


def cmd_whoami(app: App, args) -> int:
    user = app.sessions.current()
    if user is None:
        print("Not signed in")
        return 1
    print(f"{user.name} <{user.email}>")
    return 0


def cmd_add(app: App, args) -> int:
    board = app.board(app.require_user())
    fields = {"title": args.title, "description": args.description or "", "priority": args.priority}
    if args.due:
        fields["due_date"] = args.due
    task = board.create_task(fields)
    print(f"Created {task.id}: {task.title}")
    return 0


def cmd_edit(app: App, args) -> int:
    board = app.board(app.require_user())
    fields = {}
    if args.title is not None:
        fields["title"] = args.title
    if args.description is not None:
        fields["description"] = args.description
    if args.priority is not None:
        fields["priority"] = args.priority
    if args.due is not None:
        fields["due_date"] = args.due
    task = board.edit_task(args.task_id, fields)
    if task is None:
        print(f"No task {args.task_id}", file=sys.stderr)
        return 1
    print(f"Updated {task.id}: {task.title}")
    return 0


def cmd_move(app: App, args) -> int:
    board = app.board(app.require_user())
    if not board.drag_start(args.task_id):
        print(f"No task {args.task_id}", file=sys.stderr)
        return 1
    board.drag_over(args.column)
    old = board.drop(args.column)
    if old is None:
        print(f"{args.task_id} already in {args.column.value}")
    else:
        print(f"Moved {args.task_id}: {old.value} → {args.column.value}")
    return 0


def cmd_rm(app: App, args) -> int:
    board = app.board(app.require_user())
    task = board.delete_task(args.task_id)
    if task is None:
        print(f"No task {args.task_id}", file=sys.stderr)
        return 1
    print(f"Deleted {task.id}: {task.title}")
    return 0


def cmd_board(app: App, args) -> int:
    user = app.require_user()
    print(f"Task board for {user.name}\n")
    print(render_board(app.board(user)))
    return 0


def cmd_send_code(app: App, args) -> int:
    result = app.client.send_otp(args.email, args.name or "User")
    print(f"Verification code sent to {args.email}")
    print(f"Sign in with: taskboard verify-code {args.email} <code>")
    if result.get("otp"):
        print(f"(development) code: {result['otp']}")
    return 0


def cmd_verify_code(app: App, args) -> int:
    user = app.sessions.verify_code(args.email, args.code, args.name or "")
    print(f"Signed in as {user.name} ({user.distinct_id})")
    return 0


def cmd_prefs(app: App, args) -> int:
    user = app.require_user()
    if args.action == "set":
        sub = find_subcategory(app.client.get_preferences(user.distinct_id), args.category)
        if sub is None:
            print(f"No task notification category {args.category!r}", file=sys.stderr)
            return 1
        enable = args.state == "on"
        muted = opted_out_channels(sub)
        if args.channel:
            if enable:
                muted = [c for c in muted if c != args.channel]
            elif args.channel not in muted:
                muted.append(args.channel)
            current = str(sub.get("preference") or "").lower()
            preference = current if current in (OPT_IN, OPT_OUT) else OPT_IN
        else:
            preference = OPT_IN if enable else OPT_OUT
        category = sub.get("category") or sub.get("name")
        app.client.update_category_preference(user.distinct_id, category, preference, muted)
        app.gate.invalidate(user)
        target = f"{category} / {args.channel}" if args.channel else category
        print(f"{target}: {args.state}")
    elif args.action == "channel":
        app.client.update_channel_preference(user.distinct_id, args.channel, args.state == "off")
        app.gate.invalidate(user)
        print(f"{args.channel} (all categories): {args.state}")

    print(render_preferences(app.client.get_preferences(user.distinct_id)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskboard", description="Task board with email notifications")
    parser.add_argument("--config", help="Path to taskboard.yaml (overrides TASKBOARD_CONFIG)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("signup", help="Create an account")
    p.add_argument("--name", default="")
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True)
    p.set_defaults(func=cmd_signup)

    p = sub.add_parser("signin", help="Sign in")
    p.add_argument("--email", required=True)
    p.add_argument("--password", required=True)
    p.set_defaults(func=cmd_signin)

    sub.add_parser("signout", help="Sign out and discard local tasks").set_defaults(func=cmd_signout)
    sub.add_parser("whoami", help="Show the signed-in user").set_defaults(func=cmd_whoami)
    sub.add_parser("board", help="Print the board").set_defaults(func=cmd_board)

    p = sub.add_parser("add", help="Create a task in To Do")
    p.add_argument("title")
    p.add_argument("-d", "--description")
    p.add_argument("-p", "--priority", default="medium", choices=["low", "medium", "high"])
    p.add_argument("--due", help="Due date, YYYY-MM-DD")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("edit", help="Edit a task")
    p.add_argument("task_id")
    p.add_argument("--title")
    p.add_argument("-d", "--description")
    p.add_argument("-p", "--priority", choices=["low", "medium", "high"])
    p.add_argument("--due", help="Due date, YYYY-MM-DD (empty to clear)")
    p.set_defaults(func=cmd_edit)

    p = sub.add_parser("move", help="Move a task to another column")
    p.add_argument("task_id")
    p.add_argument("column", type=parse_column, help="todo | in-progress | in-review | completed")
    p.set_defaults(func=cmd_move)

    p = sub.add_parser("rm", help="Delete a task")
    p.add_argument("task_id")
    p.set_defaults(func=cmd_rm)

    p = sub.add_parser("send-code", help="Email a one-time verification code")
    p.add_argument("email")
    p.add_argument("--name")
    p.set_defaults(func=cmd_send_code)

    p = sub.add_parser("verify-code", help="Sign in with an emailed one-time code")
    p.add_argument("email")
    p.add_argument("code")
    p.add_argument("--name", help="Display name (defaults to one derived from the email)")
    p.set_defaults(func=cmd_verify_code)

    p = sub.add_parser("prefs", help="Show or change task notification preferences")
    actions = p.add_subparsers(dest="action")
    a = actions.add_parser("set", help="Turn a task category, or one channel inside it, on or off")
    a.add_argument("category")
    a.add_argument("state", choices=["on", "off"])
    a.add_argument("--channel")
    a = actions.add_parser("channel", help="Turn a channel on or off for every category")
    a.add_argument("channel")
    a.add_argument("state", choices=["on", "off"])
    p.set_defaults(func=cmd_prefs)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        app = App(Config.load(args.config))
        return args.func(app, args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except ValidationError as e:
        for name, message in e.errors.items():
            print(f"{name}: {message}", file=sys.stderr)
        return 1
    except (AuthError, BackendError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
