"""
Per-project run locks.

One asyncio.Lock per (project_id, kind) where kind is "commits" or "index".
A second run for the same project and kind waits for the first one to finish
and then usually finds nothing left to do.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

logger = logging.getLogger(__name__)

COMMITS = "commits"
INDEX = "index"


class ProjectLocks:
    def __init__(self):
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    def get(self, project_id: str, kind: str) -> asyncio.Lock:
        key = (str(project_id), kind)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_running(self, project_id: str, kind: str) -> bool:
        lock = self._locks.get((str(project_id), kind))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, project_id: str, kind: str) -> AsyncIterator[None]:
        lock = self.get(project_id, kind)
        if lock.locked():
            logger.info(f"[locks] {kind} run for project {project_id} already active, waiting")
        async with lock:
            yield


_registry = ProjectLocks()


def get_project_locks() -> ProjectLocks:
    return _registry
