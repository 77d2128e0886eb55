"""Per-kind capability set for the generic research queue.

Health systems, companies and co-investors go through the same verify → queue →
enrich lifecycle. What differs is captured here: the model class, the attributes
a verification may set, the fields research may overwrite, the child records
research replaces on success, and the prompt focus.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealflow.errors import ValidationError
from dealflow.models import (
    CoInvestor,
    CoInvestorInvestment,
    CoInvestorPartner,
    Company,
    CompanyContact,
    CompanyType,
    DeclineReason,
    EntityKind,
    Executive,
    HealthSystem,
    HealthSystemInvestment,
    IntakeStatus,
    LeadSourceType,
    PrimaryCategory,
    ResearchStatus,
    VenturePartner,
)
from dealflow.services.research.types import Candidate, ResearchResult
from dealflow.utils.identity import trim_or_none

logger = logging.getLogger(__name__)

Coercer = Callable[[Any], Any]

IDENTITY_FIELDS = (
    "legal_name",
    "website",
    "headquarters_city",
    "headquarters_state",
    "headquarters_country",
)


def _text(max_length: int) -> Coercer:
    def coerce(value: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("expected text")
        trimmed = trim_or_none(value)
        return trimmed[:max_length] if trimmed else None
    return coerce


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValueError("expected true or false")


def _amount(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("expected a number")
    number = float(value)
    if number < 0:
        raise ValueError("must not be negative")
    return number


def _positive_id(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("expected an id")
    number = int(value)
    if number <= 0:
        raise ValueError("expected a positive id")
    return number


def _choice(enum_cls: Type[enum.Enum]) -> Coercer:
    def coerce(value: Any) -> Optional[enum.Enum]:
        if value is None or value == "":
            return None
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(str(value).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(member.value for member in enum_cls)
            raise ValueError(f"expected one of: {allowed}") from exc
    return coerce


def _date(value: Any) -> Optional[date]:
    """ISO date, or a bare year / year-month pinned to its first day."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("expected an ISO date")
    text = value.strip()[:10]
    if len(text) == 4:
        text = f"{text}-01-01"
    elif len(text) == 7:
        text = f"{text}-01"
    return date.fromisoformat(text)


@dataclass(frozen=True)
class RelatedCollection:
    """Child rows a research job rewrites, e.g. a health system's executives."""

    key: str
    model: type
    owner_column: str
    required_field: str
    field_rules: Dict[str, Coercer]

    def build_rows(self, owner_id: int, entries: Any) -> List[Any]:
        if not isinstance(entries, list):
            return []
        rows = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            values: Dict[str, Any] = {self.owner_column: owner_id}
            for key, rule in self.field_rules.items():
                try:
                    values[key] = rule(entry.get(key))
                except (TypeError, ValueError):
                    logger.warning("Ignoring invalid %s.%s=%r", self.key, key, entry.get(key))
                    values[key] = None
            if not values.get(self.required_field):
                continue
            rows.append(self.model(**values))
        return rows

    async def replace(self, session: AsyncSession, owner_id: int, entries: Any) -> int:
        await self.clear(session, owner_id)
        rows = self.build_rows(owner_id, entries)
        session.add_all(rows)
        return len(rows)

    async def clear(self, session: AsyncSession, owner_id: int) -> None:
        owner = getattr(self.model, self.owner_column)
        await session.execute(delete(self.model).where(owner == owner_id))

    async def load(self, session: AsyncSession, owner_id: int) -> List[Dict[str, Any]]:
        owner = getattr(self.model, self.owner_column)
        result = await session.execute(select(self.model).where(owner == owner_id).order_by(self.model.id))
        return [row.to_dict() for row in result.scalars().all()]


_PERSON_RULES: Dict[str, Coercer] = {
    "name": _text(255),
    "title": _text(255),
    "profile_url": _text(500),
}

_INVESTMENT_RULES: Dict[str, Coercer] = {
    "portfolio_company_name": _text(255),
    "investment_amount_usd": _amount,
    "investment_date": _date,
    "lead_partner_name": _text(255),
    "source_url": _text(500),
}


_IDENTITY_RULES: Dict[str, Coercer] = {
    "legal_name": _text(255),
    "website": _text(500),
    "headquarters_city": _text(120),
    "headquarters_state": _text(120),
    "headquarters_country": _text(120),
}


@dataclass(frozen=True)
class EntityKindProfile:
    kind: EntityKind
    model: type
    label: str
    attribute_rules: Dict[str, Coercer]
    enrichable_fields: Tuple[str, ...]
    prompt_focus: str
    sticky_flags: Tuple[str, ...] = ()
    finalize: Optional[Callable[[Any], None]] = None
    reference_check: Optional[Callable[[AsyncSession, Dict[str, Any]], Any]] = None
    extra_prompt_fields: Tuple[str, ...] = field(default_factory=tuple)
    related: Tuple[RelatedCollection, ...] = ()

    def prepare_attributes(self, raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Validate verification attributes against the kind's whitelist."""
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValidationError("attributes must be an object.")
        unknown = sorted(set(raw) - set(self.attribute_rules))
        if unknown:
            raise ValidationError(
                f"Unsupported {self.label} attributes: {', '.join(unknown)}.",
                details={"fields": unknown},
            )
        prepared: Dict[str, Any] = {}
        for key, value in raw.items():
            try:
                coerced = self.attribute_rules[key](value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid {key}: {exc}.", details={"field": key}) from exc
            if coerced is not None:
                prepared[key] = coerced
        return prepared

    async def check_references(self, session: AsyncSession, attributes: Dict[str, Any]) -> None:
        if self.reference_check is not None:
            await self.reference_check(session, attributes)

    def build_entity(self, candidate: Candidate, attributes: Dict[str, Any], now: datetime):
        entity = self.model(
            name=candidate.name,
            legal_name=candidate.legal_name,
            website=candidate.website,
            headquarters_city=candidate.headquarters_city,
            headquarters_state=candidate.headquarters_state,
            headquarters_country=candidate.headquarters_country,
            research_status=ResearchStatus.queued,
            research_notes=candidate.summary,
            research_error=None,
            research_updated_at=now,
        )
        for key, value in attributes.items():
            setattr(entity, key, value)
        if self.finalize is not None:
            self.finalize(entity)
        return entity

    def apply_enrichment(self, entity, result: ResearchResult, now: datetime) -> None:
        """Write a successful research result onto the entity."""
        for key, value in (result.attributes or {}).items():
            if key not in self.enrichable_fields or value is None:
                continue
            try:
                coerced = self.attribute_rules[key](value)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid %s enrichment field %s=%r", self.kind.value, key, value)
                continue
            if coerced is None:
                continue
            if key in self.sticky_flags:
                coerced = bool(getattr(entity, key)) or bool(coerced)
            setattr(entity, key, coerced)

        notes = trim_or_none(result.research_notes) or trim_or_none(result.summary)
        if notes:
            entity.research_notes = notes
        if self.finalize is not None:
            self.finalize(entity)
        entity.research_status = ResearchStatus.completed
        entity.research_error = None
        entity.research_updated_at = now

    async def replace_related(self, session: AsyncSession, entity_id: int, result: ResearchResult) -> Dict[str, int]:
        related = result.related or {}
        return {
            collection.key: await collection.replace(session, entity_id, related.get(collection.key))
            for collection in self.related
        }

    async def clear_related(self, session: AsyncSession, entity_id: int) -> None:
        for collection in self.related:
            await collection.clear(session, entity_id)

    async def load_related(self, session: AsyncSession, entity_id: int) -> Dict[str, List[Dict[str, Any]]]:
        return {collection.key: await collection.load(session, entity_id) for collection in self.related}

    def prompt_context(self, entity) -> Dict[str, Any]:
        context: Dict[str, Any] = {}
        for key in IDENTITY_FIELDS + self.extra_prompt_fields:
            value = getattr(entity, key, None)
            if isinstance(value, enum.Enum):
                value = value.value
            if value not in (None, ""):
                context[key] = value
        return context


def _finalize_health_system(entity: HealthSystem) -> None:
    if not entity.is_limited_partner:
        entity.limited_partner_investment_usd = None


def _finalize_company(entity: Company) -> None:
    if entity.lead_source_type == LeadSourceType.health_system:
        entity.lead_source_other = None
    else:
        entity.lead_source_health_system_id = None


async def _check_company_references(session: AsyncSession, attributes: Dict[str, Any]) -> None:
    lead_type = attributes.get("lead_source_type", LeadSourceType.other)
    health_system_id = attributes.get("lead_source_health_system_id")
    if lead_type != LeadSourceType.health_system:
        return
    if health_system_id is None:
        raise ValidationError("lead_source_health_system_id is required for health system leads.")
    if await session.get(HealthSystem, health_system_id) is None:
        raise ValidationError(
            f"Lead source health system {health_system_id} does not exist.",
            details={"field": "lead_source_health_system_id"},
        )


HEALTH_SYSTEM_PROFILE = EntityKindProfile(
    kind=EntityKind.health_system,
    model=HealthSystem,
    label="health system",
    attribute_rules={
        **_IDENTITY_RULES,
        "is_limited_partner": _flag,
        "limited_partner_investment_usd": _amount,
        "is_alliance_member": _flag,
        "net_patient_revenue_usd": _amount,
        "has_innovation_team": _flag,
        "has_venture_team": _flag,
        "venture_team_summary": _text(4000),
    },
    enrichable_fields=IDENTITY_FIELDS + (
        "is_alliance_member",
        "is_limited_partner",
        "net_patient_revenue_usd",
        "has_innovation_team",
        "has_venture_team",
        "venture_team_summary",
    ),
    sticky_flags=("is_alliance_member", "is_limited_partner"),
    prompt_focus=(
        "a U.S. health system: its legal name, headquarters, net patient revenue, "
        "whether it runs an innovation team or a corporate venture arm, and any "
        "participation in health system venture alliances"
    ),
    finalize=_finalize_health_system,
    related=(
        RelatedCollection("executives", Executive, "health_system_id", "name", _PERSON_RULES),
        RelatedCollection("venture_partners", VenturePartner, "health_system_id", "name", _PERSON_RULES),
        RelatedCollection("investments", HealthSystemInvestment, "health_system_id", "portfolio_company_name", _INVESTMENT_RULES),
    ),
)

COMPANY_PROFILE = EntityKindProfile(
    kind=EntityKind.company,
    model=Company,
    label="company",
    attribute_rules={
        **_IDENTITY_RULES,
        "company_type": _choice(CompanyType),
        "primary_category": _choice(PrimaryCategory),
        "description": _text(4000),
        "lead_source_type": _choice(LeadSourceType),
        "lead_source_health_system_id": _positive_id,
        "lead_source_other": _text(500),
        "intake_status": _choice(IntakeStatus),
        "decline_reason": _choice(DeclineReason),
    },
    enrichable_fields=IDENTITY_FIELDS + ("company_type", "primary_category", "description"),
    prompt_focus=(
        "a digital health company: what it sells, who buys it, its headquarters, "
        "and which of the primary categories best describes it ("
        + ", ".join(member.value for member in PrimaryCategory)
        + ")"
    ),
    finalize=_finalize_company,
    reference_check=_check_company_references,
    extra_prompt_fields=("company_type", "description"),
    related=(
        RelatedCollection(
            "contacts",
            CompanyContact,
            "company_id",
            "name",
            {**_PERSON_RULES, "email": _text(255), "phone": _text(60)},
        ),
    ),
)

CO_INVESTOR_PROFILE = EntityKindProfile(
    kind=EntityKind.co_investor,
    model=CoInvestor,
    label="co-investor",
    attribute_rules={
        **_IDENTITY_RULES,
        "is_seed_investor": _flag,
        "is_series_a_investor": _flag,
        "investment_notes": _text(4000),
    },
    enrichable_fields=IDENTITY_FIELDS + ("is_seed_investor", "is_series_a_investor", "investment_notes"),
    sticky_flags=("is_seed_investor", "is_series_a_investor"),
    prompt_focus=(
        "a venture investor: its headquarters, the stages it invests at (seed, series A), "
        "and its healthcare investment activity"
    ),
    related=(
        RelatedCollection("partners", CoInvestorPartner, "co_investor_id", "name", _PERSON_RULES),
        RelatedCollection(
            "investments",
            CoInvestorInvestment,
            "co_investor_id",
            "portfolio_company_name",
            {**_INVESTMENT_RULES, "investment_stage": _text(120)},
        ),
    ),
)

ENTITY_KINDS: Dict[EntityKind, EntityKindProfile] = {
    profile.kind: profile for profile in (HEALTH_SYSTEM_PROFILE, COMPANY_PROFILE, CO_INVESTOR_PROFILE)
}


def get_kind_profile(kind) -> EntityKindProfile:
    try:
        return ENTITY_KINDS[EntityKind(kind)]
    except (KeyError, ValueError) as exc:
        raise ValidationError(f"Unknown entity kind: {kind}.") from exc
