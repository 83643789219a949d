"""Periodic removal of sessions that outlived the maximum lifetime."""

from __future__ import annotations

import asyncio
import logging
import os

from .store import SessionStore

logger = logging.getLogger(__name__)

SESSION_MAX_AGE_S = float(os.getenv("SESSION_MAX_AGE_S", "1800"))
SWEEP_INTERVAL_S = float(os.getenv("SWEEP_INTERVAL_S", "300"))


class ExpirySweeper:
    """
    Coarse, best-effort expiry:
      - every ``interval`` seconds, scan all sessions
      - drop those whose age exceeds ``max_age``
    A session may linger up to one interval past its nominal expiry.
    """

    def __init__(
        self,
        store: SessionStore,
        max_age: float = SESSION_MAX_AGE_S,
        interval: float = SWEEP_INTERVAL_S,
    ) -> None:
        self.store = store
        self.max_age = max_age
        self.interval = interval

    def run_once(self) -> int:
        now = self.store.clock()
        removed = 0
        # Scan a snapshot; each delete re-checks age under the table lock.
        for session_id, session in self.store.items():
            if session.age(now) > self.max_age and self.store.delete_if_older(
                session_id, self.max_age, now
            ):
                removed += 1
        if removed:
            logger.info("[sweeper] expired %d session(s), %d remaining", removed, len(self.store))
        return removed

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("[sweeper] sweep failed")

    def start(self) -> "asyncio.Task[None]":
        return asyncio.create_task(self.run_forever())


__all__ = ["ExpirySweeper", "SESSION_MAX_AGE_S", "SWEEP_INTERVAL_S"]
