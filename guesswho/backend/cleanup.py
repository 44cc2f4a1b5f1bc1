"""Periodic removal of ended and abandoned sessions."""

from __future__ import annotations

import asyncio
import logging

from guesswho.backend.store import SessionStore

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 600.0


def sweep_once(store: SessionStore) -> int:
    removed = store.remove_stale_sessions()
    if removed > 0:
        logger.info("Session cleanup: removed %d stale session(s).", removed)
    else:
        logger.debug("Session cleanup: no stale sessions found.")
    return removed


async def run_cleanup_loop(store: SessionStore, interval_seconds: float = CLEANUP_INTERVAL_SECONDS) -> None:
    """Sweep the store every interval_seconds until cancelled."""
    logger.info("Session cleanup started (interval=%ss)", interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            sweep_once(store)
    except asyncio.CancelledError:
        logger.info("Session cleanup stopped")
        raise
