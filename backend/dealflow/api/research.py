"""Per-kind research routes: search, verify, rerun, batch processing and job history."""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from dealflow.errors import ValidationError
from dealflow.models import EntityKind, JobStatus
from dealflow.services.research.container import ResearchServices
from dealflow.services.research.kinds import get_kind_profile
from dealflow.services.research.types import Candidate, JobFilter


# ============================================================================
# Pydantic Schemas
# ============================================================================

class SearchRequest(BaseModel):
    query: str


class CandidatePayload(BaseModel):
    name: str
    website: Optional[str] = None
    legal_name: Optional[str] = None
    headquarters_city: Optional[str] = None
    headquarters_state: Optional[str] = None
    headquarters_country: Optional[str] = None
    summary: Optional[str] = None
    source_urls: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None


class SearchResponse(BaseModel):
    candidates: List[CandidatePayload]
    research_used: bool


class VerifyRequest(BaseModel):
    candidate: CandidatePayload
    attributes: Dict[str, Any] = Field(default_factory=dict)


class ProcessRequest(BaseModel):
    max_jobs: int = 1
    entity_id: Optional[int] = None


class JobResponse(BaseModel):
    id: int
    entity_kind: EntityKind
    entity_id: int
    status: JobStatus
    search_name: str
    selected_website: Optional[str]
    selected_city: Optional[str]
    selected_state: Optional[str]
    selected_country: Optional[str]
    result_summary: Optional[str]
    error_message: Optional[str]
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class QueuedResearchResponse(BaseModel):
    entity: Dict[str, Any]
    job: JobResponse
    queued: bool = True


class JobErrorResponse(BaseModel):
    job_id: int
    entity_kind: str
    entity_id: int
    message: str


class RunReportResponse(BaseModel):
    attempted: int
    succeeded: int
    failed: int
    errors: List[JobErrorResponse]


class ProcessResponse(BaseModel):
    result: RunReportResponse


def get_research_services(request: Request) -> ResearchServices:
    return request.app.state.research


# ============================================================================
# Router factory
# ============================================================================

def build_research_router(kind: EntityKind) -> APIRouter:
    """Same routes for every researchable kind; ``kind`` picks the model and procedures."""
    profile = get_kind_profile(kind)
    router = APIRouter()

    @router.get("", response_model=List[Dict[str, Any]])
    async def list_entities(services: ResearchServices = Depends(get_research_services)):
        return [entity.to_dict() for entity in await services.entities.list(profile.kind)]

    @router.post("/search", response_model=SearchResponse)
    async def search_candidates(data: SearchRequest, services: ResearchServices = Depends(get_research_services)):
        result = await services.candidate_source.search(profile.kind, data.query)
        return result.to_dict()

    @router.post("/verify", response_model=QueuedResearchResponse)
    async def verify_candidate(data: VerifyRequest, services: ResearchServices = Depends(get_research_services)):
        verified = await services.verifier.verify_and_queue(
            profile.kind,
            Candidate(**data.candidate.model_dump()),
            data.attributes,
        )
        services.trigger.fire(profile.kind, verified.entity.id)
        return QueuedResearchResponse(
            entity=verified.entity.to_dict(),
            job=JobResponse.model_validate(verified.job),
            queued=verified.queued,
        )

    @router.post("/research-jobs/process", response_model=ProcessResponse)
    async def process_research_jobs(data: ProcessRequest, services: ResearchServices = Depends(get_research_services)):
        limit = services.settings.research_batch_max_jobs
        if data.max_jobs < 1 or data.max_jobs > limit:
            raise ValidationError(f"max_jobs must be between 1 and {limit}.")
        job_filter = JobFilter(entity_kind=profile.kind, entity_id=data.entity_id)
        report = await services.runner.run_queued(data.max_jobs, job_filter)
        return {"result": report.to_dict()}

    @router.get("/{entity_id}", response_model=Dict[str, Any])
    async def get_entity(entity_id: int, services: ResearchServices = Depends(get_research_services)):
        entity = await services.entities.get(profile.kind, entity_id)
        return entity.to_dict()

    @router.get("/{entity_id}/related", response_model=Dict[str, List[Dict[str, Any]]])
    async def get_related(entity_id: int, services: ResearchServices = Depends(get_research_services)):
        return await services.entities.related(profile.kind, entity_id)

    @router.delete("/{entity_id}")
    async def delete_entity(entity_id: int, services: ResearchServices = Depends(get_research_services)):
        await services.entities.delete(profile.kind, entity_id)
        return {"status": "deleted"}

    @router.post("/{entity_id}/rerun-research", response_model=QueuedResearchResponse)
    async def rerun_research(entity_id: int, services: ResearchServices = Depends(get_research_services)):
        job = await services.queue.enqueue(profile.kind, entity_id)
        entity = await services.entities.get(profile.kind, entity_id)
        services.trigger.fire(profile.kind, entity_id)
        return QueuedResearchResponse(entity=entity.to_dict(), job=JobResponse.model_validate(job), queued=True)

    @router.get("/{entity_id}/research-jobs", response_model=List[JobResponse])
    async def list_research_jobs(
        entity_id: int,
        limit: int = 20,
        services: ResearchServices = Depends(get_research_services),
    ):
        await services.entities.get(profile.kind, entity_id)
        return await services.queue.list_jobs(profile.kind, entity_id, limit)

    return router
