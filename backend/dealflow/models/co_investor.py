"""Co-investor model - funds we syndicate deals with."""
from sqlalchemy import Column, Boolean, Text

from dealflow.models.base import Base
from dealflow.models.entity import ResearchEntityMixin


class CoInvestor(ResearchEntityMixin, Base):
    __tablename__ = "co_investors"

    is_seed_investor = Column(Boolean, default=False, nullable=False)
    is_series_a_investor = Column(Boolean, default=False, nullable=False)
    investment_notes = Column(Text, nullable=True)
