"""Health system model - strategic partners and limited partners."""
from sqlalchemy import Column, Float, Boolean, Text

from dealflow.models.base import Base
from dealflow.models.entity import ResearchEntityMixin


class HealthSystem(ResearchEntityMixin, Base):
    __tablename__ = "health_systems"

    # Classification
    is_limited_partner = Column(Boolean, default=False, nullable=False)
    limited_partner_investment_usd = Column(Float, nullable=True)  # only kept while is_limited_partner
    is_alliance_member = Column(Boolean, default=False, nullable=False)

    # Research-derived profile
    net_patient_revenue_usd = Column(Float, nullable=True)
    has_innovation_team = Column(Boolean, nullable=True)
    has_venture_team = Column(Boolean, nullable=True)
    venture_team_summary = Column(Text, nullable=True)
