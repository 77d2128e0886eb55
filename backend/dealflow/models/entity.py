"""Columns shared by every researchable entity (health systems, companies, co-investors)."""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum
from sqlalchemy.orm import validates
from datetime import datetime
import enum

from dealflow.utils.identity import normalize_text


class ResearchStatus(enum.Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"


class ResearchEntityMixin:
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False, index=True, default="")  # normalized name for duplicate lookups
    legal_name = Column(String(255), nullable=True)
    website = Column(String(500), nullable=True)
    headquarters_city = Column(String(120), nullable=True)
    headquarters_state = Column(String(120), nullable=True)
    headquarters_country = Column(String(120), nullable=True)

    # Research state mirrored from the latest job
    research_status = Column(Enum(ResearchStatus), default=ResearchStatus.queued)
    research_notes = Column(Text, nullable=True)
    research_error = Column(Text, nullable=True)
    research_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = normalize_text(value)
        return value

