from datetime import datetime

import pytest

from dealflow.errors import NotFoundError
from dealflow.models import (
    Company,
    DeclineReason,
    HealthSystem,
    IntakeDecision,
    IntakeStatus,
    LeadSourceType,
    PipelinePhase,
)


def _column(columns, key):
    return next(column for column in columns if column["column"] == key)


async def test_companies_without_pipeline_get_inferred_phase(board, create_entity):
    declined = await create_entity(Company, name="Declined Co", decline_reason=DeclineReason.team)
    fresh = await create_entity(Company, name="Fresh Co")

    declined_view = await board.get_company_pipeline(declined.id)
    fresh_view = await board.get_company_pipeline(fresh.id)

    assert declined_view["phase"] == "declined"
    assert declined_view["is_inferred"] is True
    assert declined_view["intake_decision"] == "decline"
    assert fresh_view["phase"] == "intake"
    assert fresh_view["column"] == "intake"


async def test_set_phase_creates_record_with_inferred_decision(board, session_factory, create_entity):
    company = await create_entity(Company, name="Completed Intake Co", intake_status=IntakeStatus.completed)

    result = await board.set_phase(company.id, PipelinePhase.loi_collection)

    assert result == {"phase": "loi_collection", "phase_label": "LOI Collection", "column": "screening"}
    view = await board.get_company_pipeline(company.id)
    assert view["is_inferred"] is False
    assert view["intake_decision"] == IntakeDecision.advance_to_negotiation.value
    assert view["is_screening_phase"] is True


async def test_any_phase_can_follow_any_other(board, create_entity):
    company = await create_entity(Company, name="Wandering Co")

    for phase in (PipelinePhase.portfolio_growth, PipelinePhase.intake, PipelinePhase.declined, PipelinePhase.screening):
        await board.set_phase(company.id, phase)
        assert (await board.get_company_pipeline(company.id))["phase"] == phase.value


async def test_board_hides_declined_unless_asked(board, create_entity):
    await create_entity(Company, name="Declined Co", decline_reason=DeclineReason.product)
    await create_entity(Company, name="Screening Co", intake_status=IntakeStatus.screening_evaluation)

    default_board = await board.list_board()
    full_board = await board.list_board(include_declined=True)

    assert [column["column"] for column in default_board] == [
        "intake",
        "venture_studio_contract_evaluation",
        "screening",
        "commercial_acceleration",
    ]
    assert [card["name"] for card in _column(default_board, "screening")["companies"]] == ["Screening Co"]
    assert [card["name"] for card in _column(full_board, "declined")["companies"]] == ["Declined Co"]


async def test_screening_eligible_uses_resolved_phase(board, create_entity):
    inferred = await create_entity(Company, name="Inferred Screening Co", intake_status=IntakeStatus.screening_evaluation)
    moved = await create_entity(Company, name="Moved Co")
    await create_entity(Company, name="Intake Co")
    await board.set_phase(moved.id, PipelinePhase.loi_collection)

    eligible = await board.list_screening_eligible()

    assert {card["company_id"] for card in eligible} == {inferred.id, moved.id}


async def test_unknown_company_raises_not_found(board):
    with pytest.raises(NotFoundError):
        await board.set_phase(404, PipelinePhase.intake)
    with pytest.raises(NotFoundError):
        await board.get_company_pipeline(404)


async def test_pipeline_routes(client, create_entity):
    company = await create_entity(Company, name="Routed Co")

    patched = await client.patch(f"/pipeline/opportunities/{company.id}/phase", json={"phase": "commercial_negotiation"})
    assert patched.status_code == 200
    assert patched.json() == {
        "phase": "commercial_negotiation",
        "phase_label": "Commercial Negotiation",
        "column": "commercial_acceleration",
    }

    view = (await client.get(f"/companies/{company.id}/pipeline")).json()
    assert view["phase"] == "commercial_negotiation"

    board = (await client.get("/pipeline/opportunities")).json()["columns"]
    assert [card["company_id"] for card in _column(board, "commercial_acceleration")["companies"]] == [company.id]

    assert (await client.patch(f"/pipeline/opportunities/{company.id}/phase", json={"phase": "limbo"})).status_code == 422
    assert (await client.patch("/pipeline/opportunities/999/phase", json={"phase": "intake"})).status_code == 404
    assert (await client.get("/pipeline/screening-eligible")).json() == {"companies": []}


async def test_intake_decline_moves_company_to_declined(board, create_entity):
    company = await create_entity(Company, name="Too Early Co")

    card = await board.update_intake(company.id, decline_reason=DeclineReason.too_early)

    assert card["phase"] == "declined"
    assert card["column"] == "declined"
    assert card["decline_reason"] == "too_early"
    view = await board.get_company_pipeline(company.id)
    assert view["is_inferred"] is False
    assert view["intake_decision"] == IntakeDecision.decline.value


async def test_clearing_decline_returns_company_to_intake(board, create_entity):
    company = await create_entity(Company, name="Second Look Co")
    await board.update_intake(company.id, decline_reason=DeclineReason.team)

    card = await board.update_intake(company.id, decline_reason=None)

    assert card["phase"] == "intake"
    assert card["intake_decision"] == IntakeDecision.pending.value
    assert card["decline_reason"] is None


async def test_clearing_decline_leaves_other_phases_alone(board, create_entity):
    company = await create_entity(Company, name="Advancing Co")
    await board.set_phase(company.id, PipelinePhase.screening)

    card = await board.update_intake(company.id)

    assert card["phase"] == "screening"


async def test_intake_schedule_sets_status_unless_intake_is_done(board, create_entity):
    fresh = await create_entity(Company, name="Scheduled Co")
    done = await create_entity(Company, name="Done Co", intake_status=IntakeStatus.completed)
    when = datetime(2026, 11, 2, 15, 0)

    scheduled = await board.update_intake(fresh.id, intake_scheduled_at=when)
    unscheduled = await board.update_intake(fresh.id, intake_scheduled_at=None)
    kept = await board.update_intake(done.id, intake_scheduled_at=None)

    assert scheduled["intake_status"] == "scheduled"
    assert scheduled["intake_scheduled_at"] == "2026-11-02T15:00:00"
    assert unscheduled["intake_status"] == "not_scheduled"
    assert kept["intake_status"] == "completed"


async def test_intake_lead_source_matches_health_system_by_name(board, session_factory, create_entity):
    await create_entity(HealthSystem, name="Mercy Health")
    company = await create_entity(Company, name="Referred Co")

    matched = await board.update_intake(company.id, lead_source="  mercy HEALTH ")
    unmatched = await board.update_intake(company.id, lead_source="Conference booth")

    assert matched["lead_source"] == "Mercy Health"
    assert matched["lead_source_type"] == LeadSourceType.health_system.value
    assert unmatched["lead_source"] == "Conference booth"
    async with session_factory() as session:
        stored = await session.get(Company, company.id)
    assert stored.lead_source_type == LeadSourceType.other
    assert stored.lead_source_health_system_id is None
    assert stored.lead_source_other == "Conference booth"


async def test_intake_and_column_routes(client, create_entity):
    company = await create_entity(Company, name="Card Co")

    declined = await client.patch(
        f"/pipeline/opportunities/{company.id}/intake",
        json={"decline_reason": "insufficient_tam", "intake_scheduled_at": "2026-11-02T15:00:00Z"},
    )
    assert declined.status_code == 200
    assert declined.json()["item"]["phase"] == "declined"
    assert declined.json()["item"]["intake_scheduled_at"] == "2026-11-02T15:00:00"

    dropped = await client.patch(f"/pipeline/opportunities/{company.id}/phase", json={"column": "screening"})
    assert dropped.json() == {"phase": "screening", "phase_label": "Screening", "column": "screening"}

    assert (await client.patch(f"/pipeline/opportunities/{company.id}/phase", json={})).status_code == 400
    assert (await client.patch(f"/pipeline/opportunities/{company.id}/intake", json={"decline_reason": "bored"})).status_code == 422
    assert (await client.patch("/pipeline/opportunities/999/intake", json={})).status_code == 404
