"""
Periodic sweep of expired pending logins and sessions.
Runs on the event loop, independent of request traffic; each sweep only holds the store locks for a scan.
"""
import asyncio
import logging

from order_server.config import DEFAULT_CLEANUP_INTERVAL
from order_server.oauth import OAuthClient

logger = logging.getLogger(__name__)


async def run_cleanup_loop(oauth: OAuthClient, interval: float = DEFAULT_CLEANUP_INTERVAL) -> None:
    """Sleep, sweep, repeat until cancelled. A failed sweep is logged and retried next tick."""
    while True:
        await asyncio.sleep(interval)
        try:
            oauth.cleanup_expired()
        except Exception:
            logger.exception("Session cleanup failed")


def start_cleanup_task(oauth: OAuthClient, interval: float = DEFAULT_CLEANUP_INTERVAL) -> asyncio.Task:
    logger.info("Starting session cleanup every %ss", interval)
    return asyncio.create_task(run_cleanup_loop(oauth, interval), name="session-cleanup")


async def stop_cleanup_task(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
