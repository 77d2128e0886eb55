from datetime import datetime

import pytest

from dealflow.errors import ResearchProcedureError, ValidationError
from dealflow.models import CoInvestor, Company, EntityKind, HealthSystem, PrimaryCategory, ResearchStatus
from dealflow.services.llm.types import LLMOrchestrationError
from dealflow.services.research.kinds import CO_INVESTOR_PROFILE, COMPANY_PROFILE, HEALTH_SYSTEM_PROFILE, get_kind_profile
from dealflow.services.research.procedures import (
    LLMResearchProcedure,
    build_default_procedures,
    build_enrichment_prompt,
    parse_research_payload,
)
from dealflow.services.research.types import ResearchResult, ResearchSubject


def _subject(**overrides):
    fields = {
        "kind": EntityKind.company,
        "entity_id": 1,
        "job_id": 10,
        "search_name": "Nimbus Care",
        "website": "https://nimbus.care",
        "entity_fields": {"description": "Virtual nursing"},
    }
    fields.update(overrides)
    return ResearchSubject(**fields)


async def test_procedure_turns_llm_json_into_result(settings, orchestrator):
    orchestrator.replies.append(
        '{"summary": "Nimbus sells virtual nursing.", "research_notes": "- Founded 2019",'
        ' "attributes": {"primary_category": "care_delivery_tech_enabled_services"},'
        ' "source_urls": ["https://nimbus.care"]}'
    )
    procedure = LLMResearchProcedure(COMPANY_PROFILE, orchestrator, settings)

    result = await procedure.enrich(_subject())

    assert result.summary == "Nimbus sells virtual nursing."
    assert result.attributes == {"primary_category": "care_delivery_tech_enabled_services"}
    request = orchestrator.requests[0]
    assert request.stage.value == "entity_enrichment"
    assert "Nimbus Care" in request.prompt
    assert "Virtual nursing" in request.prompt
    assert "primary_category" in request.prompt


async def test_procedure_wraps_orchestration_failures(settings, orchestrator):
    orchestrator.replies.append(LLMOrchestrationError("All model routes failed"))
    procedure = LLMResearchProcedure(COMPANY_PROFILE, orchestrator, settings)

    with pytest.raises(ResearchProcedureError):
        await procedure.enrich(_subject())


def test_payload_keeps_related_lists_and_prompt_names_them():
    result = parse_research_payload(
        '{"summary": "Mercy runs a venture arm.",'
        ' "related": {"executives": [{"name": "Ada Chief"}, "junk"], "investments": "none", "venture_partners": []}}'
    )

    assert result.related == {"executives": [{"name": "Ada Chief"}], "venture_partners": []}
    prompt = build_enrichment_prompt(HEALTH_SYSTEM_PROFILE, _subject(kind=EntityKind.health_system, entity_fields={}))
    assert "executives (objects with name, title, profile_url)" in prompt
    assert "investments (objects with portfolio_company_name" in prompt


def test_payload_without_summary_is_an_error():
    with pytest.raises(ResearchProcedureError):
        parse_research_payload('{"attributes": {}}')
    with pytest.raises(ResearchProcedureError):
        parse_research_payload("I could not find anything.")


def test_default_procedures_cover_every_kind(settings, orchestrator):
    assert set(build_default_procedures(settings, orchestrator)) == set(EntityKind)


def test_enrichment_respects_whitelist_and_sticky_flags():
    entity = HealthSystem(name="Sticky Health", is_alliance_member=True, is_limited_partner=False)
    result = ResearchResult(
        summary="Summary only",
        attributes={
            "is_alliance_member": False,
            "has_venture_team": "true",
            "net_patient_revenue_usd": "not a number",
            "limited_partner_investment_usd": 5,
            "name": "Renamed",
        },
    )

    HEALTH_SYSTEM_PROFILE.apply_enrichment(entity, result, datetime(2030, 1, 1))

    assert entity.is_alliance_member is True
    assert entity.has_venture_team is True
    assert entity.net_patient_revenue_usd is None
    assert entity.limited_partner_investment_usd is None
    assert entity.name == "Sticky Health"
    assert entity.research_notes == "Summary only"
    assert entity.research_status == ResearchStatus.completed
    assert entity.research_updated_at == datetime(2030, 1, 1)


def test_enrichment_coerces_enums_and_sets_flags():
    company = Company(name="Enum Co")
    COMPANY_PROFILE.apply_enrichment(
        company, ResearchResult(summary="s", attributes={"primary_category": "Other"}), datetime(2030, 1, 1)
    )
    investor = CoInvestor(name="Flag Capital", is_seed_investor=False)
    CO_INVESTOR_PROFILE.apply_enrichment(
        investor, ResearchResult(summary="s", attributes={"is_seed_investor": True}), datetime(2030, 1, 1)
    )

    assert company.primary_category == PrimaryCategory.other
    assert investor.is_seed_investor is True


def test_name_key_follows_name():
    entity = HealthSystem(name="  Mixed   CASE Health ")
    assert entity.name_key == "mixed case health"
    entity.name = "Renamed"
    assert entity.name_key == "renamed"


def test_unknown_kind_is_a_validation_error():
    with pytest.raises(ValidationError):
        get_kind_profile("spaceship")
