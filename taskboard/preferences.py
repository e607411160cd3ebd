"""
Preference gate: decides whether a task event may notify the user.

The notification service returns a preference document of category
sections. Which of its categories cover task activity is not a fixed
contract, so matching is a best-effort keyword heuristic (substring,
case-insensitive) rather than an exact category lookup.

Fail open: a missing, empty or unreadable document means "notify".
"""
import logging
import time
from typing import Callable, Dict, Any, Iterator, List, Optional, Tuple

from .schema import UserSession

logger = logging.getLogger(__name__)

OPT_IN = "opt_in"
OPT_OUT = "opt_out"

# Substrings that mark a subcategory as covering task lifecycle events
TASK_KEYWORDS = (
    "task",
    "update",
    "task-updates", "task_updates", "task updates", "taskupdate",
    "task-created", "task_created", "task created", "taskcreated",
    "task-status", "task_status", "task status", "taskstatuschanged",
    "task-deleted", "task_deleted", "task deleted", "taskdeleted",
)


def _norm(value: Any) -> str:
    return str(value or "").strip().lower()


def is_task_related(subcategory: Dict[str, Any]) -> bool:
    """True if the subcategory's category or name contains a task keyword."""
    haystacks = (_norm(subcategory.get("category")), _norm(subcategory.get("name")))
    return any(kw in text for kw in TASK_KEYWORDS for text in haystacks if text)


def _all_channels_opted_out(subcategory: Dict[str, Any]) -> bool:
    channels = subcategory.get("channels") or []
    if not isinstance(channels, list):
        return False
    entries = [c for c in channels if isinstance(c, dict)]
    if not entries:
        return False
    return all(_norm(c.get("preference")) == OPT_OUT for c in entries)


def task_subcategories(document: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """Task-related subcategories of a preference document, in document order."""
    for section in document.get("sections") or []:
        if not isinstance(section, dict):
            continue
        for sub in section.get("subcategories") or []:
            if isinstance(sub, dict) and is_task_related(sub):
                yield sub


def opted_out_channels(subcategory: Dict[str, Any]) -> List[str]:
    """Channel names the user switched off inside one subcategory."""
    channels = subcategory.get("channels") or []
    if not isinstance(channels, list):
        return []
    return [
        c["channel"] for c in channels
        if isinstance(c, dict) and c.get("channel") and _norm(c.get("preference")) == OPT_OUT
    ]


def find_subcategory(document: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    """Look up a task-related subcategory by its category id or display name."""
    wanted = _norm(key)
    try:
        for sub in task_subcategories(document or {}):
            if wanted in (_norm(sub.get("category")), _norm(sub.get("name"))):
                return sub
    except (AttributeError, TypeError):
        logger.warning("Unreadable preference document")
    return None


def should_notify(document: Optional[Dict[str, Any]]) -> bool:
    """
    Scan a preference document for the first decisive task-related subcategory.

    Rules, per task-related subcategory in document order:
        opt_out                           → False (stop)
        opt_in                            → True  (stop)
        neither, every channel opted out  → False (stop)
        neither, otherwise                → keep scanning

    No task-related subcategory, or a malformed document → True.
    """
    try:
        if not document:
            return True
        for sub in task_subcategories(document):
            preference = _norm(sub.get("preference"))
            if preference == OPT_OUT:
                return False
            if preference == OPT_IN:
                return True
            if _all_channels_opted_out(sub):
                return False
            # ambiguous: keep scanning
        return True
    except (AttributeError, TypeError) as e:
        logger.warning(f"Unreadable preference document, notifying anyway: {e}")
        return True


class PreferenceGate:
    """Fetches a user's preference document and applies should_notify()."""

    def __init__(self, fetch: Callable[[str], Dict[str, Any]], cache_ttl: float = 30.0):
        """
        Args:
            fetch: callable(distinct_id) -> preference document
            cache_ttl: seconds to reuse a fetched document (0 = always refetch)
        """
        self.fetch = fetch
        self.cache_ttl = cache_ttl
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def _document(self, distinct_id: str) -> Dict[str, Any]:
        if self.cache_ttl > 0:
            hit = self._cache.get(distinct_id)
            if hit and time.monotonic() - hit[0] < self.cache_ttl:
                return hit[1]
        document = self.fetch(distinct_id)
        if self.cache_ttl > 0:
            self._cache[distinct_id] = (time.monotonic(), document)
        return document

    def allows(self, user: UserSession) -> bool:
        """True if task notifications may be sent to this user."""
        try:
            document = self._document(user.distinct_id)
        except Exception as e:
            logger.warning(f"Preference fetch failed for {user.distinct_id}, notifying anyway: {e}")
            return True
        allowed = should_notify(document)
        if not allowed:
            logger.info(f"Task notifications opted out for {user.distinct_id}")
        return allowed

    def invalidate(self, user: Optional[UserSession] = None) -> None:
        """Drop cached documents (for one user, or all)."""
        if user is None:
            self._cache.clear()
        else:
            self._cache.pop(user.distinct_id, None)
