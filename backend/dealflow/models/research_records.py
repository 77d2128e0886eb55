"""Records gathered by research and replaced wholesale on every successful job."""
from sqlalchemy import Column, Integer, String, Date, DateTime, Float, ForeignKey
from datetime import datetime

from dealflow.models.base import Base


class Executive(Base):
    __tablename__ = "executives"

    id = Column(Integer, primary_key=True, index=True)
    health_system_id = Column(Integer, ForeignKey("health_systems.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    profile_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class VenturePartner(Base):
    __tablename__ = "venture_partners"

    id = Column(Integer, primary_key=True, index=True)
    health_system_id = Column(Integer, ForeignKey("health_systems.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    profile_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class HealthSystemInvestment(Base):
    __tablename__ = "health_system_investments"

    id = Column(Integer, primary_key=True, index=True)
    health_system_id = Column(Integer, ForeignKey("health_systems.id", ondelete="CASCADE"), nullable=False, index=True)
    portfolio_company_name = Column(String(255), nullable=False)
    investment_amount_usd = Column(Float, nullable=True)
    investment_date = Column(Date, nullable=True)
    lead_partner_name = Column(String(255), nullable=True)
    source_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CoInvestorPartner(Base):
    __tablename__ = "co_investor_partners"

    id = Column(Integer, primary_key=True, index=True)
    co_investor_id = Column(Integer, ForeignKey("co_investors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    profile_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CoInvestorInvestment(Base):
    __tablename__ = "co_investor_investments"

    id = Column(Integer, primary_key=True, index=True)
    co_investor_id = Column(Integer, ForeignKey("co_investors.id", ondelete="CASCADE"), nullable=False, index=True)
    portfolio_company_name = Column(String(255), nullable=False)
    investment_amount_usd = Column(Float, nullable=True)
    investment_date = Column(Date, nullable=True)
    investment_stage = Column(String(120), nullable=True)
    lead_partner_name = Column(String(255), nullable=True)
    source_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class CompanyContact(Base):
    __tablename__ = "company_contacts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(60), nullable=True)
    profile_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
