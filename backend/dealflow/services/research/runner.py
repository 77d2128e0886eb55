from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, Protocol

from dealflow.errors import ConcurrencyConflict, ResearchProcedureError
from dealflow.models import EntityKind, ResearchJob
from dealflow.services.research.queue import ResearchJobQueue
from dealflow.services.research.types import JobError, JobFilter, ResearchResult, ResearchSubject, RunReport

logger = logging.getLogger(__name__)


class ResearchProcedure(Protocol):
    async def enrich(self, subject: ResearchSubject) -> ResearchResult:
        ...


class ResearchJobRunner:
    """Claims a batch of queued jobs and runs them one after another.

    A failing job is recorded as failed and the batch moves on. Only the
    claim/complete/fail transitions touch the database; procedures run
    outside any transaction.
    """

    def __init__(
        self,
        queue: ResearchJobQueue,
        procedures: Mapping[EntityKind, ResearchProcedure],
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._queue = queue
        self._procedures = dict(procedures)
        self._timeout_seconds = timeout_seconds

    async def run_queued(self, max_jobs: int = 1, job_filter: Optional[JobFilter] = None) -> RunReport:
        jobs = await self._queue.claim_batch(max_jobs, job_filter)
        report = RunReport()
        for job in jobs:
            report.attempted += 1
            try:
                result = await self._execute(job)
                await self._queue.complete(job.id, result)
            except ConcurrencyConflict as exc:
                # Someone else already moved the job on.
                logger.warning("Research job %s changed state underneath the runner: %s", job.id, exc)
                report.errors.append(self._job_error(job, str(exc)))
            except Exception as exc:
                message = str(exc) or exc.__class__.__name__
                logger.warning("Research job %s (%s %s) failed: %s", job.id, job.entity_kind.value, job.entity_id, message)
                await self._record_failure(job, message)
                report.failed += 1
                report.errors.append(self._job_error(job, message))
            else:
                report.succeeded += 1
        if jobs:
            logger.info(
                "Research batch finished attempted=%s succeeded=%s failed=%s",
                report.attempted, report.succeeded, report.failed,
            )
        return report

    async def _execute(self, job: ResearchJob) -> ResearchResult:
        procedure = self._procedures.get(job.entity_kind)
        if procedure is None:
            raise ResearchProcedureError(f"No research procedure registered for {job.entity_kind.value}.")
        subject = await self._queue.load_subject(job)
        try:
            if self._timeout_seconds:
                result = await asyncio.wait_for(procedure.enrich(subject), timeout=self._timeout_seconds)
            else:
                result = await procedure.enrich(subject)
        except asyncio.TimeoutError as exc:
            raise ResearchProcedureError(f"Research timed out after {self._timeout_seconds:g}s.") from exc
        except ResearchProcedureError:
            raise
        except Exception as exc:
            raise ResearchProcedureError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(result, ResearchResult):
            raise ResearchProcedureError("Research procedure returned no result.")
        return result

    async def _record_failure(self, job: ResearchJob, message: str) -> None:
        try:
            await self._queue.fail(job.id, message)
        except ConcurrencyConflict as exc:
            logger.warning("Could not mark research job %s failed: %s", job.id, exc)
        except Exception:
            logger.exception("Could not mark research job %s failed", job.id)

    @staticmethod
    def _job_error(job: ResearchJob, message: str) -> JobError:
        return JobError(
            job_id=job.id,
            entity_kind=job.entity_kind.value,
            entity_id=job.entity_id,
            message=message,
        )
