from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from dealflow.config import Settings, get_settings
from dealflow.models import EntityKind
from dealflow.services.llm.orchestrator import LLMOrchestrator
from dealflow.services.research.candidate_source import CandidateSource
from dealflow.services.research.entities import EntityStore
from dealflow.services.research.procedures import build_default_procedures
from dealflow.services.research.queue import ResearchJobQueue
from dealflow.services.research.runner import ResearchJobRunner, ResearchProcedure
from dealflow.services.research.trigger import ResearchTrigger
from dealflow.services.research.verifier import CandidateVerifier
from dealflow.services.retrieval.cache import SearchCache


@dataclass
class ResearchServices:
    settings: Settings
    queue: ResearchJobQueue
    runner: ResearchJobRunner
    trigger: ResearchTrigger
    verifier: CandidateVerifier
    entities: EntityStore
    candidate_source: CandidateSource


def build_research_services(
    session_factory: async_sessionmaker,
    settings: Optional[Settings] = None,
    *,
    procedures: Optional[Mapping[EntityKind, ResearchProcedure]] = None,
    candidate_source: Optional[CandidateSource] = None,
) -> ResearchServices:
    """Wire the research subsystem around one session factory."""
    settings = settings or get_settings()
    orchestrator = None
    if procedures is None or candidate_source is None:
        orchestrator = LLMOrchestrator(settings)
    if procedures is None:
        procedures = build_default_procedures(settings, orchestrator)
    if candidate_source is None:
        candidate_source = CandidateSource(settings, orchestrator, SearchCache(settings))

    queue = ResearchJobQueue(session_factory)
    runner = ResearchJobRunner(queue, procedures, timeout_seconds=settings.research_job_timeout_seconds)
    return ResearchServices(
        settings=settings,
        queue=queue,
        runner=runner,
        trigger=ResearchTrigger(runner),
        verifier=CandidateVerifier(session_factory, queue),
        entities=EntityStore(session_factory),
        candidate_source=candidate_source,
    )
