"""Company pipeline phases, their legacy-field defaults and the Kanban column projection.

Phases are free labels: any phase can be set from any other. Everything here is
pure so the board, the company view and screening eligibility agree on it.
"""
from __future__ import annotations

import enum
from typing import Dict, List, Optional, Tuple

from dealflow.models import IntakeDecision, IntakeStatus, PipelinePhase


class BoardColumn(enum.Enum):
    intake = "intake"
    venture_studio_contract_evaluation = "venture_studio_contract_evaluation"
    screening = "screening"
    commercial_acceleration = "commercial_acceleration"
    declined = "declined"


PHASE_LABELS: Dict[PipelinePhase, str] = {
    PipelinePhase.intake: "Intake",
    PipelinePhase.declined: "Declined",
    PipelinePhase.venture_studio_negotiation: "Venture Studio Negotiation",
    PipelinePhase.screening: "Screening",
    PipelinePhase.loi_collection: "LOI Collection",
    PipelinePhase.commercial_negotiation: "Commercial Negotiation",
    PipelinePhase.portfolio_growth: "Portfolio Growth",
}

BOARD_COLUMNS: List[Tuple[BoardColumn, str]] = [
    (BoardColumn.intake, "Intake"),
    (BoardColumn.venture_studio_contract_evaluation, "Venture Studio Contract Evaluation"),
    (BoardColumn.screening, "Screening"),
    (BoardColumn.commercial_acceleration, "Commercial Acceleration"),
    (BoardColumn.declined, "Declined"),
]

# Declined companies get their own column, left off the board unless asked for
HIDDEN_BY_DEFAULT = frozenset({BoardColumn.declined})

_PHASE_COLUMNS: Dict[PipelinePhase, BoardColumn] = {
    PipelinePhase.intake: BoardColumn.intake,
    PipelinePhase.venture_studio_negotiation: BoardColumn.venture_studio_contract_evaluation,
    PipelinePhase.screening: BoardColumn.screening,
    PipelinePhase.loi_collection: BoardColumn.screening,
    PipelinePhase.commercial_negotiation: BoardColumn.commercial_acceleration,
    PipelinePhase.portfolio_growth: BoardColumn.commercial_acceleration,
    PipelinePhase.declined: BoardColumn.declined,
}

_COLUMN_PHASES: Dict[BoardColumn, PipelinePhase] = {
    BoardColumn.intake: PipelinePhase.intake,
    BoardColumn.venture_studio_contract_evaluation: PipelinePhase.venture_studio_negotiation,
    BoardColumn.screening: PipelinePhase.screening,
    BoardColumn.commercial_acceleration: PipelinePhase.commercial_negotiation,
    BoardColumn.declined: PipelinePhase.declined,
}

_SCREENING_PHASES = frozenset({PipelinePhase.screening, PipelinePhase.loi_collection})


def _intake_status(value) -> Optional[IntakeStatus]:
    if value is None or isinstance(value, IntakeStatus):
        return value
    return IntakeStatus(value)


def infer_default_phase(intake_status=None, decline_reason=None) -> PipelinePhase:
    """Phase for a company that has never been placed on the board."""
    status = _intake_status(intake_status)
    if decline_reason:
        return PipelinePhase.declined
    if status == IntakeStatus.screening_evaluation:
        return PipelinePhase.screening
    if status == IntakeStatus.completed:
        return PipelinePhase.venture_studio_negotiation
    return PipelinePhase.intake


def infer_default_decision(intake_status=None, decline_reason=None) -> IntakeDecision:
    status = _intake_status(intake_status)
    if decline_reason:
        return IntakeDecision.decline
    if status in (IntakeStatus.completed, IntakeStatus.screening_evaluation):
        return IntakeDecision.advance_to_negotiation
    return IntakeDecision.pending


def resolve_phase(explicit_phase, intake_status=None, decline_reason=None) -> PipelinePhase:
    if explicit_phase is not None:
        return PipelinePhase(explicit_phase)
    return infer_default_phase(intake_status, decline_reason)


def phase_to_column(phase) -> BoardColumn:
    return _PHASE_COLUMNS[PipelinePhase(phase)]


def column_to_phase(column) -> PipelinePhase:
    return _COLUMN_PHASES[BoardColumn(column)]


def is_screening_phase(phase) -> bool:
    return PipelinePhase(phase) in _SCREENING_PHASES


def phase_label(phase) -> str:
    return PHASE_LABELS[PipelinePhase(phase)]


def column_label(column) -> str:
    return dict(BOARD_COLUMNS)[BoardColumn(column)]
