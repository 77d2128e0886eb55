import asyncio
import logging
from typing import Any, Dict, Optional

from celery.signals import worker_process_init
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from dealflow.workers.celery_app import celery_app
from dealflow.config import configure_logging, get_settings
from dealflow.models import EntityKind
from dealflow.services.research.container import build_research_services
from dealflow.services.research.types import JobFilter

logger = logging.getLogger(__name__)


@worker_process_init.connect
def _setup_worker_logging(**_kwargs):
    configure_logging()


async def run_research_batch(max_jobs: int, entity_kind: Optional[str] = None) -> Dict[str, Any]:
    """One batch against a private engine. NullPool keeps connections off the next event loop."""
    settings = get_settings()
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        services = build_research_services(session_factory, settings)
        job_filter = JobFilter(entity_kind=EntityKind(entity_kind)) if entity_kind else None
        report = await services.runner.run_queued(max_jobs, job_filter)
        return report.to_dict()
    finally:
        await engine.dispose()


@celery_app.task(name="dealflow.workers.tasks.process_research_jobs")
def process_research_jobs(max_jobs: int = 5, entity_kind: Optional[str] = None):
    """Scheduled sweep over queued research jobs of every kind (or one kind)."""
    result = asyncio.run(run_research_batch(max_jobs, entity_kind))
    logger.info("Scheduled research batch: %s", result)
    return result
