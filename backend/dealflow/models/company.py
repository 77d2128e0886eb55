"""Company model - pipeline opportunities sourced from health systems and elsewhere."""
from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
import enum

from dealflow.models.base import Base
from dealflow.models.entity import ResearchEntityMixin


class CompanyType(enum.Enum):
    startup = "startup"
    spin_out = "spin_out"
    denovo = "denovo"


class PrimaryCategory(enum.Enum):
    patient_access_and_growth = "patient_access_and_growth"
    care_delivery_tech_enabled_services = "care_delivery_tech_enabled_services"
    clinical_workflow_and_productivity = "clinical_workflow_and_productivity"
    revenue_cycle_and_financial_operations = "revenue_cycle_and_financial_operations"
    value_based_care_and_population_health_enablement = "value_based_care_and_population_health_enablement"
    ai_enabled_automation_and_decision_support = "ai_enabled_automation_and_decision_support"
    data_platform_interoperability_and_integration = "data_platform_interoperability_and_integration"
    remote_patient_monitoring_and_connected_devices = "remote_patient_monitoring_and_connected_devices"
    diagnostics_imaging_and_testing_enablement = "diagnostics_imaging_and_testing_enablement"
    pharmacy_and_medication_enablement = "pharmacy_and_medication_enablement"
    supply_chain_procurement_and_asset_operations = "supply_chain_procurement_and_asset_operations"
    security_privacy_and_compliance_infrastructure = "security_privacy_and_compliance_infrastructure"
    provider_experience_and_development = "provider_experience_and_development"
    other = "other"


class LeadSourceType(enum.Enum):
    health_system = "health_system"
    other = "other"


class IntakeStatus(enum.Enum):
    not_scheduled = "not_scheduled"
    scheduled = "scheduled"
    completed = "completed"
    screening_evaluation = "screening_evaluation"


class DeclineReason(enum.Enum):
    product = "product"
    insufficient_roi = "insufficient_roi"
    highly_competitive_landscape = "highly_competitive_landscape"
    out_of_investment_thesis_scope = "out_of_investment_thesis_scope"
    too_early = "too_early"
    too_mature_for_seed_investment = "too_mature_for_seed_investment"
    lacks_proof_points = "lacks_proof_points"
    insufficient_tam = "insufficient_tam"
    team = "team"
    health_system_buying_process = "health_system_buying_process"
    workflow_friction = "workflow_friction"
    other = "other"


class Company(ResearchEntityMixin, Base):
    __tablename__ = "companies"

    # Classification
    company_type = Column(Enum(CompanyType), default=CompanyType.startup, nullable=False)
    primary_category = Column(Enum(PrimaryCategory), default=PrimaryCategory.other, nullable=False)
    description = Column(Text, nullable=True)

    # Lead source: health_system_id is only kept for health_system leads, other text only for other
    lead_source_type = Column(Enum(LeadSourceType), default=LeadSourceType.other, nullable=False)
    lead_source_health_system_id = Column(Integer, ForeignKey("health_systems.id"), nullable=True)
    lead_source_other = Column(Text, nullable=True)

    # Legacy intake fields, still used to infer a pipeline phase
    intake_status = Column(Enum(IntakeStatus), default=IntakeStatus.not_scheduled, nullable=False)
    intake_scheduled_at = Column(DateTime, nullable=True)
    decline_reason = Column(Enum(DeclineReason), nullable=True)

    # Relationships
    lead_source_health_system = relationship("HealthSystem")
    pipeline = relationship("CompanyPipeline", back_populates="company", uselist=False, cascade="all, delete-orphan")
