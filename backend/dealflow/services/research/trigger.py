from __future__ import annotations

import asyncio
import logging
from typing import Set

from dealflow.models import EntityKind
from dealflow.services.research.runner import ResearchJobRunner
from dealflow.services.research.types import JobFilter

logger = logging.getLogger(__name__)


class ResearchTrigger:
    """Starts a one-job run for a single entity without making the caller wait for it."""

    def __init__(self, runner: ResearchJobRunner) -> None:
        self._runner = runner
        self._tasks: Set[asyncio.Task] = set()

    def fire(self, kind: EntityKind, entity_id: int) -> asyncio.Task:
        task = asyncio.create_task(self._run(EntityKind(kind), entity_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, kind: EntityKind, entity_id: int) -> None:
        try:
            report = await self._runner.run_queued(1, JobFilter(entity_kind=kind, entity_id=entity_id))
        except Exception:
            logger.exception("Background research run failed for %s %s", kind.value, entity_id)
            return
        if report.attempted == 0:
            logger.debug("No queued research left for %s %s", kind.value, entity_id)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
