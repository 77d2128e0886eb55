import pytest
from sqlalchemy import func, select

from dealflow.errors import DuplicateEntityError, ValidationError
from dealflow.models import (
    Company,
    CompanyPipeline,
    EntityKind,
    HealthSystem,
    JobStatus,
    LeadSourceType,
    ResearchJob,
    ResearchStatus,
)
from dealflow.services.research.types import Candidate


async def _count(session_factory, column):
    async with session_factory() as session:
        return await session.scalar(select(func.count(column)))


async def test_verify_creates_entity_and_first_job(services):
    candidate = Candidate(
        name="Acme Health System",
        website="https://acme.health",
        headquarters_city="Austin",
        headquarters_state="TX",
        summary="Regional system",
    )

    result = await services.verifier.verify_and_queue(
        EntityKind.health_system,
        candidate,
        {"is_limited_partner": True, "limited_partner_investment_usd": 2500000},
    )

    entity, job = result.entity, result.job
    assert result.queued is True
    assert entity.id is not None
    assert entity.research_status == ResearchStatus.queued
    assert entity.research_updated_at is not None
    assert entity.research_notes == "Regional system"
    assert entity.limited_partner_investment_usd == 2500000
    assert job.status == JobStatus.queued
    assert job.entity_kind == EntityKind.health_system
    assert job.entity_id == entity.id
    assert job.selected_city == "Austin"


async def test_duplicate_name_is_rejected_without_writes(services, session_factory, create_entity):
    await create_entity(HealthSystem, name="Acme Health", headquarters_city="Austin")

    with pytest.raises(DuplicateEntityError) as exc_info:
        await services.verifier.verify_and_queue(EntityKind.health_system, Candidate(name="  acme   HEALTH "))

    assert str(exc_info.value).startswith('Duplicate health system: "Acme Health" already exists for Austin.')
    assert await _count(session_factory, HealthSystem.id) == 1
    assert await _count(session_factory, ResearchJob.id) == 0


async def test_same_name_in_another_city_is_not_a_duplicate(services, create_entity):
    await create_entity(HealthSystem, name="St. Luke's", headquarters_city="Boise", headquarters_state="ID")

    result = await services.verifier.verify_and_queue(
        EntityKind.health_system,
        Candidate(name="St. Luke's", headquarters_city="Kansas City", headquarters_state="MO"),
    )

    assert result.entity.name == "St. Luke's"


async def test_matching_website_is_a_duplicate_despite_location_gaps(services, create_entity):
    await create_entity(Company, name="Nimbus Care", website="https://www.nimbus.care/")

    with pytest.raises(DuplicateEntityError) as exc_info:
        await services.verifier.verify_and_queue(
            EntityKind.company,
            Candidate(name="Nimbus Care", website="nimbus.care", headquarters_city="Denver"),
        )

    assert "same name and website" in str(exc_info.value)


async def test_duplicates_are_scoped_to_the_entity_kind(services, create_entity):
    await create_entity(Company, name="Summit Partners")

    result = await services.verifier.verify_and_queue(EntityKind.co_investor, Candidate(name="Summit Partners"))

    assert result.entity.name == "Summit Partners"


async def test_invalid_attributes_are_rejected_before_any_write(services, session_factory):
    with pytest.raises(ValidationError):
        await services.verifier.verify_and_queue(
            EntityKind.health_system, Candidate(name="Valid Name"), {"favourite_colour": "blue"}
        )
    with pytest.raises(ValidationError):
        await services.verifier.verify_and_queue(
            EntityKind.health_system, Candidate(name="Valid Name"), {"is_alliance_member": "maybe"}
        )
    with pytest.raises(ValidationError):
        await services.verifier.verify_and_queue(EntityKind.health_system, Candidate(name="   "))

    assert await _count(session_factory, HealthSystem.id) == 0


async def test_lp_investment_is_dropped_for_non_limited_partners(services):
    result = await services.verifier.verify_and_queue(
        EntityKind.health_system,
        Candidate(name="Not An LP Health"),
        {"is_limited_partner": False, "limited_partner_investment_usd": 100},
    )

    assert result.entity.limited_partner_investment_usd is None


async def test_company_health_system_lead_source_must_exist(services, session_factory, create_entity):
    with pytest.raises(ValidationError):
        await services.verifier.verify_and_queue(
            EntityKind.company,
            Candidate(name="Orphan Lead Co"),
            {"lead_source_type": "health_system", "lead_source_health_system_id": 77},
        )
    assert await _count(session_factory, Company.id) == 0

    hs = await create_entity(HealthSystem, name="Lead Source Health")
    result = await services.verifier.verify_and_queue(
        EntityKind.company,
        Candidate(name="Referred Co"),
        {
            "lead_source_type": "health_system",
            "lead_source_health_system_id": hs.id,
            "lead_source_other": "conference",
            "decline_reason": "too_early",
        },
    )

    company = result.entity
    assert company.lead_source_type == LeadSourceType.health_system
    assert company.lead_source_health_system_id == hs.id
    assert company.lead_source_other is None
    assert await _count(session_factory, CompanyPipeline.id) == 0


async def test_failed_enqueue_leaves_no_entity_behind(services, session_factory, monkeypatch):
    async def _refuse(session, profile, entity):
        raise RuntimeError("queue unavailable")

    monkeypatch.setattr(services.queue, "enqueue_in_session", _refuse)

    with pytest.raises(RuntimeError, match="queue unavailable"):
        await services.verifier.verify_and_queue(EntityKind.health_system, Candidate(name="Atomic Health"))

    assert await _count(session_factory, HealthSystem.id) == 0
    assert await _count(session_factory, ResearchJob.id) == 0
