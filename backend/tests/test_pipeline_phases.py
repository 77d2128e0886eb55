import pytest

from dealflow.models import IntakeDecision, IntakeStatus, PipelinePhase
from dealflow.services.pipeline_phases import (
    BOARD_COLUMNS,
    BoardColumn,
    column_label,
    column_to_phase,
    infer_default_decision,
    infer_default_phase,
    is_screening_phase,
    phase_label,
    phase_to_column,
    resolve_phase,
)


def test_decline_reason_infers_declined():
    assert infer_default_phase(IntakeStatus.completed, "too_early") == PipelinePhase.declined


def test_no_signals_infer_intake():
    assert infer_default_phase(IntakeStatus.not_scheduled, None) == PipelinePhase.intake
    assert infer_default_phase(None, None) == PipelinePhase.intake
    assert infer_default_phase("scheduled", None) == PipelinePhase.intake


def test_intake_status_drives_later_defaults():
    assert infer_default_phase("screening_evaluation") == PipelinePhase.screening
    assert infer_default_phase(IntakeStatus.completed) == PipelinePhase.venture_studio_negotiation


def test_default_intake_decision():
    assert infer_default_decision(IntakeStatus.scheduled, "team") == IntakeDecision.decline
    assert infer_default_decision(IntakeStatus.completed) == IntakeDecision.advance_to_negotiation
    assert infer_default_decision(IntakeStatus.screening_evaluation) == IntakeDecision.advance_to_negotiation
    assert infer_default_decision(IntakeStatus.not_scheduled) == IntakeDecision.pending


def test_explicit_phase_wins_over_inference():
    assert resolve_phase(PipelinePhase.portfolio_growth, IntakeStatus.not_scheduled, "team") == PipelinePhase.portfolio_growth
    assert resolve_phase(None, IntakeStatus.not_scheduled, "team") == PipelinePhase.declined


def test_every_phase_maps_to_exactly_one_column():
    columns = {column for column, _ in BOARD_COLUMNS}
    for phase in PipelinePhase:
        assert phase_to_column(phase) in columns


@pytest.mark.parametrize(
    "phase,column",
    [
        (PipelinePhase.intake, BoardColumn.intake),
        (PipelinePhase.venture_studio_negotiation, BoardColumn.venture_studio_contract_evaluation),
        (PipelinePhase.screening, BoardColumn.screening),
        (PipelinePhase.loi_collection, BoardColumn.screening),
        (PipelinePhase.commercial_negotiation, BoardColumn.commercial_acceleration),
        (PipelinePhase.portfolio_growth, BoardColumn.commercial_acceleration),
        (PipelinePhase.declined, BoardColumn.declined),
    ],
)
def test_phase_columns(phase, column):
    assert phase_to_column(phase) == column


def test_column_round_trips_to_a_phase_in_that_column():
    for column, _ in BOARD_COLUMNS:
        assert phase_to_column(column_to_phase(column)) == column
    assert column_to_phase("commercial_acceleration") == PipelinePhase.commercial_negotiation


def test_screening_predicate():
    screening = {phase for phase in PipelinePhase if is_screening_phase(phase)}
    assert screening == {PipelinePhase.screening, PipelinePhase.loi_collection}


def test_labels():
    assert phase_label("loi_collection") == "LOI Collection"
    assert column_label(BoardColumn.venture_studio_contract_evaluation) == "Venture Studio Contract Evaluation"
