"""Pipeline board routes."""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

from dealflow.errors import ValidationError
from dealflow.models import DeclineReason, PipelinePhase
from dealflow.services.pipeline_board import PipelineBoard
from dealflow.services.pipeline_phases import BoardColumn, column_to_phase

router = APIRouter()


# ============================================================================
# Pydantic Schemas
# ============================================================================

class PhaseUpdate(BaseModel):
    # Either a phase, or the board column a card was dropped on
    phase: Optional[PipelinePhase] = None
    column: Optional[BoardColumn] = None


class PhaseUpdateResponse(BaseModel):
    phase: PipelinePhase
    phase_label: str
    column: str


class IntakeCardUpdate(BaseModel):
    intake_scheduled_at: Optional[datetime] = None
    decline_reason: Optional[DeclineReason] = None
    lead_source: Optional[str] = None


def get_pipeline_board(request: Request) -> PipelineBoard:
    return request.app.state.pipeline_board


# ============================================================================
# Routes
# ============================================================================

@router.get("/pipeline/opportunities")
async def list_opportunities(include_declined: bool = False, board: PipelineBoard = Depends(get_pipeline_board)):
    return {"columns": await board.list_board(include_declined=include_declined)}


@router.patch("/pipeline/opportunities/{company_id}/phase", response_model=PhaseUpdateResponse)
async def update_phase(company_id: int, data: PhaseUpdate, board: PipelineBoard = Depends(get_pipeline_board)):
    if (data.phase is None) == (data.column is None):
        raise ValidationError("Provide exactly one of phase or column.")
    phase = data.phase if data.phase is not None else column_to_phase(data.column)
    return await board.set_phase(company_id, phase)


@router.patch("/pipeline/opportunities/{company_id}/intake")
async def update_intake_card(company_id: int, data: IntakeCardUpdate, board: PipelineBoard = Depends(get_pipeline_board)):
    card = await board.update_intake(
        company_id,
        intake_scheduled_at=data.intake_scheduled_at,
        decline_reason=data.decline_reason,
        lead_source=data.lead_source,
    )
    return {"item": card}


@router.get("/pipeline/screening-eligible")
async def list_screening_eligible(board: PipelineBoard = Depends(get_pipeline_board)):
    companies: List[Dict[str, Any]] = await board.list_screening_eligible()
    return {"companies": companies}


@router.get("/companies/{company_id}/pipeline")
async def get_company_pipeline(company_id: int, board: PipelineBoard = Depends(get_pipeline_board)):
    return await board.get_company_pipeline(company_id)
