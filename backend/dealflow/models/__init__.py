from dealflow.models.base import Base
from dealflow.models.entity import ResearchStatus
from dealflow.models.research_job import ResearchJob, EntityKind, JobStatus, ACTIVE_JOB_STATUSES
from dealflow.models.health_system import HealthSystem
from dealflow.models.company import (
    Company,
    CompanyType,
    PrimaryCategory,
    LeadSourceType,
    IntakeStatus,
    DeclineReason,
)
from dealflow.models.co_investor import CoInvestor
from dealflow.models.pipeline import CompanyPipeline, PipelinePhase, IntakeDecision
from dealflow.models.research_records import (
    Executive,
    VenturePartner,
    HealthSystemInvestment,
    CoInvestorPartner,
    CoInvestorInvestment,
    CompanyContact,
)

__all__ = [
    "Base", "ResearchStatus",
    "ResearchJob", "EntityKind", "JobStatus", "ACTIVE_JOB_STATUSES",
    "HealthSystem",
    "Company", "CompanyType", "PrimaryCategory", "LeadSourceType", "IntakeStatus", "DeclineReason",
    "CoInvestor",
    "CompanyPipeline", "PipelinePhase", "IntakeDecision",
    "Executive", "VenturePartner", "HealthSystemInvestment",
    "CoInvestorPartner", "CoInvestorInvestment", "CompanyContact",
]
