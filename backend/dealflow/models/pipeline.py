"""Company pipeline model - 1:1 with Company, created lazily on first phase update."""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from dealflow.models.base import Base


class PipelinePhase(enum.Enum):
    intake = "intake"
    declined = "declined"
    venture_studio_negotiation = "venture_studio_negotiation"
    screening = "screening"
    loi_collection = "loi_collection"
    commercial_negotiation = "commercial_negotiation"
    portfolio_growth = "portfolio_growth"


class IntakeDecision(enum.Enum):
    pending = "pending"
    advance_to_negotiation = "advance_to_negotiation"
    decline = "decline"


class CompanyPipeline(Base):
    __tablename__ = "company_pipelines"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True)

    phase = Column(Enum(PipelinePhase), nullable=False, default=PipelinePhase.intake)
    intake_decision = Column(Enum(IntakeDecision), nullable=False, default=IntakeDecision.pending)
    intake_decision_at = Column(DateTime, nullable=True)
    intake_decision_notes = Column(Text, nullable=True)
    next_step = Column(String(500), nullable=True)
    target_loi_count = Column(Integer, default=3, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="pipeline")
