from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from dealflow.errors import ActiveResearchJobError, NotFoundError
from dealflow.models import Company, EntityKind, LeadSourceType
from dealflow.services.research.kinds import get_kind_profile
from dealflow.services.research.queue import ResearchJobQueue

logger = logging.getLogger(__name__)


class EntityStore:
    """Reads and deletes for researchable entities of any kind."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, kind, entity_id: int) -> Any:
        profile = get_kind_profile(kind)
        async with self._session_factory() as session:
            entity = await session.get(profile.model, entity_id)
        if entity is None:
            raise NotFoundError(f"{profile.label.capitalize()} {entity_id} not found.")
        return entity

    async def list(self, kind, limit: int = 200) -> List[Any]:
        profile = get_kind_profile(kind)
        async with self._session_factory() as session:
            result = await session.execute(
                select(profile.model).order_by(profile.model.name_key, profile.model.id).limit(max(1, int(limit)))
            )
            return list(result.scalars().all())

    async def related(self, kind, entity_id: int) -> Dict[str, List[Dict[str, Any]]]:
        """Child rows the latest successful research wrote, keyed by collection."""
        profile = get_kind_profile(kind)
        async with self._session_factory() as session:
            entity = await session.get(profile.model, entity_id)
            if entity is None:
                raise NotFoundError(f"{profile.label.capitalize()} {entity_id} not found.")
            return await profile.load_related(session, entity_id)

    async def delete(self, kind, entity_id: int) -> None:
        """Delete an entity unless research is queued or running for it. Job history is kept."""
        profile = get_kind_profile(kind)
        async with self._session_factory() as session:
            async with session.begin():
                entity = await session.get(profile.model, entity_id)
                if entity is None:
                    raise NotFoundError(f"{profile.label.capitalize()} {entity_id} not found.")
                active = await ResearchJobQueue.active_job(session, profile.kind, entity_id)
                if active is not None:
                    raise ActiveResearchJobError(
                        f"Cannot delete {profile.label} {entity_id} while research job {active.id} is {active.status.value}.",
                        details={"job_id": active.id},
                    )
                if profile.kind == EntityKind.health_system:
                    await session.execute(
                        update(Company)
                        .where(Company.lead_source_health_system_id == entity_id)
                        .values(lead_source_health_system_id=None, lead_source_type=LeadSourceType.other)
                        .execution_options(synchronize_session=False)
                    )
                await profile.clear_related(session, entity_id)
                await session.delete(entity)
        logger.info("Deleted %s %s", profile.label, entity_id)
