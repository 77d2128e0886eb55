from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dealflow.errors import ConcurrencyConflict, NotFoundError, ResearchProcedureError, ValidationError
from dealflow.models import ACTIVE_JOB_STATUSES, EntityKind, JobStatus, ResearchJob, ResearchStatus
from dealflow.services.research.kinds import EntityKindProfile, get_kind_profile
from dealflow.services.research.types import JobFilter, ResearchResult, ResearchSubject

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_LENGTH = 900
_ENQUEUE_ATTEMPTS = 3


def _validate_max_jobs(max_jobs) -> int:
    if isinstance(max_jobs, bool) or not isinstance(max_jobs, int) or max_jobs < 1:
        raise ValidationError("max_jobs must be a positive integer.")
    return max_jobs


class ResearchJobQueue:
    """Job records for every entity kind, with at most one queued/running job per entity.

    Every state change is a single transaction. The active-job rule is backed by a
    partial unique index, claims by a conditional ``UPDATE ... WHERE status = 'queued'``.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    @staticmethod
    async def active_job(session: AsyncSession, kind: EntityKind, entity_id: int) -> Optional[ResearchJob]:
        result = await session.execute(
            select(ResearchJob)
            .where(
                ResearchJob.entity_kind == kind,
                ResearchJob.entity_id == entity_id,
                ResearchJob.status.in_(ACTIVE_JOB_STATUSES),
            )
            .order_by(ResearchJob.created_at.desc(), ResearchJob.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def enqueue_in_session(self, session: AsyncSession, profile: EntityKindProfile, entity) -> ResearchJob:
        """Queue research for ``entity`` inside the caller's transaction, reusing an active job."""
        existing = await self.active_job(session, profile.kind, entity.id)
        if existing is not None:
            return existing

        job = ResearchJob(
            entity_kind=profile.kind,
            entity_id=entity.id,
            status=JobStatus.queued,
            search_name=entity.name,
            selected_website=entity.website,
            selected_city=entity.headquarters_city,
            selected_state=entity.headquarters_state,
            selected_country=entity.headquarters_country,
        )
        session.add(job)
        entity.research_status = ResearchStatus.queued
        entity.research_error = None
        await session.flush()
        return job

    async def enqueue(self, kind, entity_id: int) -> ResearchJob:
        profile = get_kind_profile(kind)
        for attempt in range(_ENQUEUE_ATTEMPTS):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        entity = await session.get(profile.model, entity_id)
                        if entity is None:
                            raise NotFoundError(f"{profile.label.capitalize()} {entity_id} not found.")
                        job = await self.enqueue_in_session(session, profile, entity)
                logger.info("Research job %s active for %s %s", job.id, profile.kind.value, entity_id)
                return job
            except IntegrityError:
                # Another caller inserted the active job first; the next pass returns it.
                logger.debug("Enqueue race for %s %s (attempt %s)", profile.kind.value, entity_id, attempt + 1)
        raise ConcurrencyConflict(f"Could not enqueue research for {profile.label} {entity_id}.")

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    async def claim_batch(self, max_jobs: int, job_filter: Optional[JobFilter] = None) -> List[ResearchJob]:
        """Move up to ``max_jobs`` queued jobs, oldest first, to running and return them."""
        _validate_max_jobs(max_jobs)
        job_filter = (job_filter or JobFilter()).validate()

        async with self._session_factory() as session:
            async with session.begin():
                stmt = select(ResearchJob.id).where(ResearchJob.status == JobStatus.queued)
                if job_filter.entity_kind is not None:
                    stmt = stmt.where(ResearchJob.entity_kind == EntityKind(job_filter.entity_kind))
                if job_filter.entity_id is not None:
                    stmt = stmt.where(ResearchJob.entity_id == job_filter.entity_id)
                stmt = (
                    stmt.order_by(ResearchJob.created_at, ResearchJob.id)
                    .limit(max_jobs)
                    .with_for_update(skip_locked=True)
                )
                candidate_ids = list((await session.execute(stmt)).scalars().all())

                started_at = datetime.utcnow()
                claimed_ids: List[int] = []
                for job_id in candidate_ids:
                    result = await session.execute(
                        update(ResearchJob)
                        .where(ResearchJob.id == job_id, ResearchJob.status == JobStatus.queued)
                        .values(status=JobStatus.running, started_at=started_at)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 1:
                        claimed_ids.append(job_id)
                    else:
                        logger.debug("Lost claim race for research job %s", job_id)

                if not claimed_ids:
                    return []

                jobs = list(
                    (
                        await session.execute(
                            select(ResearchJob)
                            .where(ResearchJob.id.in_(claimed_ids))
                            .order_by(ResearchJob.created_at, ResearchJob.id)
                        )
                    ).scalars().all()
                )
                for job in jobs:
                    profile = get_kind_profile(job.entity_kind)
                    await session.execute(
                        update(profile.model)
                        .where(profile.model.id == job.entity_id)
                        .values(research_status=ResearchStatus.running)
                        .execution_options(synchronize_session=False)
                    )

        for job in jobs:
            logger.info("Claimed research job %s (%s %s)", job.id, job.entity_kind.value, job.entity_id)
        return jobs

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def _transition_from_running(self, session: AsyncSession, job_id: int, **values) -> ResearchJob:
        result = await session.execute(
            update(ResearchJob)
            .where(ResearchJob.id == job_id, ResearchJob.status == JobStatus.running)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        job = await session.get(ResearchJob, job_id)
        if job is None:
            raise NotFoundError(f"Research job {job_id} not found.")
        if result.rowcount != 1:
            raise ConcurrencyConflict(
                f"Research job {job_id} is {job.status.value}, not running.",
                details={"job_id": job_id, "status": job.status.value},
            )
        return job

    async def complete(self, job_id: int, result: ResearchResult) -> ResearchJob:
        """running → succeeded, then apply the enrichment and replace the entity's related rows."""
        if not isinstance(result, ResearchResult):
            raise ResearchProcedureError("Research procedure returned no result.")
        async with self._session_factory() as session:
            async with session.begin():
                now = datetime.utcnow()
                job = await self._transition_from_running(
                    session,
                    job_id,
                    status=JobStatus.succeeded,
                    completed_at=now,
                    result_summary=result.summary,
                    result_json=result.to_dict(),
                    error_message=None,
                )
                profile = get_kind_profile(job.entity_kind)
                entity = await session.get(profile.model, job.entity_id)
                if entity is None:
                    logger.warning("Research job %s finished but %s %s is gone", job_id, profile.kind.value, job.entity_id)
                    replaced = {}
                else:
                    profile.apply_enrichment(entity, result, now)
                    replaced = await profile.replace_related(session, job.entity_id, result)
        logger.info(
            "Research job %s succeeded (%s %s), related rows %s",
            job.id, job.entity_kind.value, job.entity_id, replaced,
        )
        return job

    async def fail(self, job_id: int, error_message: str) -> ResearchJob:
        """running → failed. The entity keeps its last successful ``research_updated_at``."""
        message = (str(error_message or "").strip() or "Research failed.")[:ERROR_MESSAGE_MAX_LENGTH]
        async with self._session_factory() as session:
            async with session.begin():
                job = await self._transition_from_running(
                    session,
                    job_id,
                    status=JobStatus.failed,
                    completed_at=datetime.utcnow(),
                    error_message=message,
                )
                profile = get_kind_profile(job.entity_kind)
                entity = await session.get(profile.model, job.entity_id)
                if entity is not None:
                    entity.research_status = ResearchStatus.failed
                    entity.research_error = message
        logger.info("Research job %s failed (%s %s): %s", job.id, job.entity_kind.value, job.entity_id, message)
        return job

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_job(self, job_id: int) -> ResearchJob:
        async with self._session_factory() as session:
            job = await session.get(ResearchJob, job_id)
        if job is None:
            raise NotFoundError(f"Research job {job_id} not found.")
        return job

    async def list_jobs(self, kind, entity_id: int, limit: int = 20) -> List[ResearchJob]:
        """Job history for one entity, newest first."""
        profile = get_kind_profile(kind)
        async with self._session_factory() as session:
            result = await session.execute(
                select(ResearchJob)
                .where(ResearchJob.entity_kind == profile.kind, ResearchJob.entity_id == entity_id)
                .order_by(ResearchJob.created_at.desc(), ResearchJob.id.desc())
                .limit(max(1, int(limit)))
            )
            return list(result.scalars().all())

    async def load_subject(self, job: ResearchJob) -> ResearchSubject:
        profile = get_kind_profile(job.entity_kind)
        async with self._session_factory() as session:
            entity = await session.get(profile.model, job.entity_id)
            if entity is None:
                raise ResearchProcedureError(f"{profile.label.capitalize()} {job.entity_id} no longer exists.")
            entity_fields = profile.prompt_context(entity)
        return ResearchSubject(
            kind=profile.kind,
            entity_id=job.entity_id,
            job_id=job.id,
            search_name=job.search_name,
            website=job.selected_website or entity_fields.get("website"),
            headquarters_city=job.selected_city or entity_fields.get("headquarters_city"),
            headquarters_state=job.selected_state or entity_fields.get("headquarters_state"),
            headquarters_country=job.selected_country or entity_fields.get("headquarters_country"),
            entity_fields=entity_fields,
        )
