from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from dealflow.errors import DuplicateEntityError
from dealflow.services.research.duplicates import DuplicateDetector, duplicate_message
from dealflow.services.research.kinds import get_kind_profile
from dealflow.services.research.queue import ResearchJobQueue
from dealflow.services.research.types import Candidate, VerificationResult

logger = logging.getLogger(__name__)


class CandidateVerifier:
    """Turns a search candidate into an entity plus its first queued research job.

    The duplicate check, the insert and the enqueue share one transaction, so a
    failed enqueue never leaves an entity without research queued.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: ResearchJobQueue,
        detector: Optional[DuplicateDetector] = None,
    ) -> None:
        self._session_factory = session_factory
        self._queue = queue
        self._detector = detector or DuplicateDetector()

    async def verify_and_queue(
        self,
        kind,
        candidate: Candidate,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> VerificationResult:
        profile = get_kind_profile(kind)
        candidate = candidate.cleaned()
        prepared = profile.prepare_attributes(attributes)

        async with self._session_factory() as session:
            async with session.begin():
                await profile.check_references(session, prepared)
                duplicate = await self._detector.find_duplicate(session, profile, candidate)
                if duplicate is not None:
                    raise DuplicateEntityError(
                        duplicate_message(profile, duplicate),
                        details={"entity_id": duplicate.id, "name": duplicate.name},
                    )
                entity = profile.build_entity(candidate, prepared, datetime.utcnow())
                session.add(entity)
                await session.flush()
                job = await self._queue.enqueue_in_session(session, profile, entity)

        logger.info("Verified %s %s (%s), queued research job %s", profile.label, entity.id, entity.name, job.id)
        return VerificationResult(entity=entity, job=job)
