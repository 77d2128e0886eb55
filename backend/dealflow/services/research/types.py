from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from dealflow.errors import ValidationError
from dealflow.models import EntityKind
from dealflow.utils.identity import trim_or_none


def _confidence(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return min(1.0, max(0.0, number))


@dataclass
class Candidate:
    """Unverified search result. Lives for one search-then-verify round trip, never stored."""

    name: str
    website: Optional[str] = None
    legal_name: Optional[str] = None
    headquarters_city: Optional[str] = None
    headquarters_state: Optional[str] = None
    headquarters_country: Optional[str] = None
    summary: Optional[str] = None
    source_urls: List[str] = field(default_factory=list)
    confidence: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        urls = data.get("source_urls") or data.get("sourceUrls") or []
        return cls(
            name=str(data.get("name") or "").strip(),
            website=trim_or_none(data.get("website")),
            legal_name=trim_or_none(data.get("legal_name")),
            headquarters_city=trim_or_none(data.get("headquarters_city")),
            headquarters_state=trim_or_none(data.get("headquarters_state")),
            headquarters_country=trim_or_none(data.get("headquarters_country")),
            summary=trim_or_none(data.get("summary")),
            source_urls=[str(url).strip() for url in urls if str(url or "").strip()] if isinstance(urls, list) else [],
            confidence=_confidence(data.get("confidence")),
        )

    def cleaned(self) -> "Candidate":
        name = str(self.name or "").strip()
        if not name:
            raise ValidationError("Candidate name is required.")
        return Candidate(
            name=name,
            website=trim_or_none(self.website),
            legal_name=trim_or_none(self.legal_name),
            headquarters_city=trim_or_none(self.headquarters_city),
            headquarters_state=trim_or_none(self.headquarters_state),
            headquarters_country=trim_or_none(self.headquarters_country),
            summary=trim_or_none(self.summary),
            source_urls=list(self.source_urls or []),
            confidence=_confidence(self.confidence),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ResearchSubject:
    """What a research procedure gets to work with: the job's search snapshot plus the entity's current fields."""

    kind: EntityKind
    entity_id: int
    job_id: int
    search_name: str
    website: Optional[str] = None
    headquarters_city: Optional[str] = None
    headquarters_state: Optional[str] = None
    headquarters_country: Optional[str] = None
    entity_fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResearchResult:
    summary: str
    research_notes: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    related: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    source_urls: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class JobFilter:
    entity_kind: Optional[EntityKind] = None
    entity_id: Optional[int] = None

    def validate(self) -> "JobFilter":
        if self.entity_kind is not None:
            try:
                self.entity_kind = EntityKind(self.entity_kind)
            except ValueError as exc:
                raise ValidationError(f"Unknown entity kind: {self.entity_kind}.") from exc
        if self.entity_id is not None and self.entity_kind is None:
            raise ValidationError("An entity_id filter also needs entity_kind.")
        return self


@dataclass
class JobError:
    job_id: int
    entity_kind: str
    entity_id: int
    message: str


@dataclass
class RunReport:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[JobError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VerificationResult:
    entity: Any
    job: Any
    queued: bool = True
