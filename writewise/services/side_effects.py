"""Best-effort side effects.

Work that follows a successful assessment write (skill update, streak,
badges, curriculum adaptation, learner profile) is wrapped in BestEffort.
run() never raises: a failure is logged, its partial writes are rolled back,
and the caller's result is unaffected.
"""

import logging
from typing import Any, Awaitable, Callable

from writewise.db.database import connect

logger = logging.getLogger(__name__)


class BestEffort:
    def __init__(self, name: str, fn: Callable[..., Awaitable[Any]], *args, **kwargs):
        self.name = name
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.result: Any = None

    async def run(self, db=None) -> bool:
        """Run against ``db``, or on a fresh connection when none is given."""
        if db is None:
            try:
                async with connect() as own_db:
                    return await self._run_on(own_db)
            except Exception:
                logger.exception("Best-effort %s could not open a connection", self.name)
                return False
        return await self._run_on(db)

    async def _run_on(self, db) -> bool:
        try:
            self.result = await self.fn(db, *self.args, **self.kwargs)
            await db.commit()
            return True
        except Exception:
            logger.exception("Best-effort %s failed", self.name)
            try:
                await db.rollback()
            except Exception:
                logger.warning("Rollback after %s failed", self.name)
            return False

    def __repr__(self):
        return f"BestEffort({self.name!r})"


async def run_all(effects: list[BestEffort], db=None) -> dict[str, bool]:
    """Run each effect independently; one failure never stops the rest."""
    return {effect.name: await effect.run(db) for effect in effects}
