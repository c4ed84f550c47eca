"""
Cleanup module for removing stale drafts.

Drafts are autosaved form state kept under the drafts namespace. Entries
whose envelope timestamp is older than the threshold (default: 7 days) are
removed so they do not eat into the storage budget.
"""

import time
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .constants import DRAFTS_NAMESPACE
from .logger import get_logger
from .storage import PersistentStore

logger = get_logger()

DAY_MS = 86400 * 1000


def cleanup_stale_drafts(
    store: PersistentStore,
    days: int = 7,
    now_ms: Optional[int] = None,
) -> Tuple[int, int]:
    """
    Remove drafts older than the specified number of days.

    Unreadable drafts (corrupt or from another version) are removed too.

    Args:
        store: Store to clean
        days: Number of days to keep drafts (default: 7)
        now_ms: Current time in epoch ms (default: wall clock)

    Returns:
        Tuple of (total_drafts_before, total_drafts_after)
    """
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    cutoff = now_ms - days * DAY_MS
    prefix = f"{DRAFTS_NAMESPACE}:"

    try:
        drafts = [k for k in store.keys() if k.startswith(prefix)]
        removed = 0
        for key in drafts:
            envelope = store.read_envelope(key)
            timestamp = envelope.get("timestamp") if envelope else None
            if not isinstance(timestamp, int) or timestamp < cutoff:
                if store.remove_item(key):
                    removed += 1
                    logger.debug("Removed stale draft", key=key, timestamp=timestamp)

        before = len(drafts)
        after = before - removed
        logger.info(
            f"Cleanup complete: {removed} removed, {after} remaining",
            drafts_before=before,
            drafts_removed=removed,
            drafts_after=after,
            days_threshold=days,
        )
        return (before, after)

    except SQLAlchemyError as e:
        logger.error(f"Cleanup failed: {e}", error=str(e), days=days)
        return (0, 0)
