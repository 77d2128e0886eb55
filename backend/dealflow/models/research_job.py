from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Enum, Index, text
from datetime import datetime
import enum

from dealflow.models.base import Base


class EntityKind(enum.Enum):
    health_system = "health_system"
    company = "company"
    co_investor = "co_investor"


class JobStatus(enum.Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.queued, JobStatus.running)
_ACTIVE_PREDICATE = text("status IN ('queued', 'running')")


class ResearchJob(Base):
    """One research attempt for one entity. At most one queued/running job per entity."""
    __tablename__ = "research_jobs"
    __table_args__ = (
        Index(
            "uq_research_jobs_active_entity",
            "entity_kind",
            "entity_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_research_jobs_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    entity_kind = Column(Enum(EntityKind), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)  # polymorphic, no FK
    status = Column(Enum(JobStatus), default=JobStatus.queued, nullable=False)

    # Search hints captured at verification time
    search_name = Column(String(255), nullable=False)
    selected_website = Column(String(500), nullable=True)
    selected_city = Column(String(120), nullable=True)
    selected_state = Column(String(120), nullable=True)
    selected_country = Column(String(120), nullable=True)

    # Results
    result_summary = Column(Text, nullable=True)
    result_json = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
