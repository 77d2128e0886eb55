from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from dealflow.errors import ConcurrencyConflict, NotFoundError
from dealflow.models import (
    Company,
    CompanyPipeline,
    DeclineReason,
    HealthSystem,
    IntakeDecision,
    IntakeStatus,
    LeadSourceType,
    PipelinePhase,
)
from dealflow.services.pipeline_phases import (
    BOARD_COLUMNS,
    HIDDEN_BY_DEFAULT,
    column_label,
    infer_default_decision,
    is_screening_phase,
    phase_label,
    phase_to_column,
    resolve_phase,
)
from dealflow.utils.identity import normalize_text, trim_or_none

logger = logging.getLogger(__name__)


def describe_company(company: Company) -> Dict[str, Any]:
    """Board card for a company with ``pipeline`` already loaded."""
    pipeline = company.pipeline
    phase = resolve_phase(pipeline.phase if pipeline is not None else None, company.intake_status, company.decline_reason)
    if pipeline is not None:
        decision = pipeline.intake_decision
    else:
        decision = infer_default_decision(company.intake_status, company.decline_reason)
    return {
        "company_id": company.id,
        "name": company.name,
        "website": company.website,
        "phase": phase.value,
        "phase_label": phase_label(phase),
        "column": phase_to_column(phase).value,
        "column_label": column_label(phase_to_column(phase)),
        "is_inferred": pipeline is None,
        "is_screening_phase": is_screening_phase(phase),
        "intake_decision": decision.value,
        "next_step": pipeline.next_step if pipeline is not None else None,
        "research_status": company.research_status.value if company.research_status else None,
    }


class PipelineBoard:
    """Reads and writes company pipeline phases."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def _companies(self, session) -> List[Company]:
        result = await session.execute(
            select(Company).options(selectinload(Company.pipeline)).order_by(Company.name_key, Company.id)
        )
        return list(result.scalars().all())

    async def get_company_pipeline(self, company_id: int) -> Dict[str, Any]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Company).options(selectinload(Company.pipeline)).where(Company.id == company_id)
            )
            company = result.scalars().first()
            if company is None:
                raise NotFoundError(f"Company {company_id} not found.")
            return describe_company(company)

    async def set_phase(self, company_id: int, phase) -> Dict[str, Any]:
        """Upsert the company's pipeline record with ``phase``. Any phase may follow any other."""
        phase = PipelinePhase(phase)
        for _ in range(2):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        company = await session.get(Company, company_id)
                        if company is None:
                            raise NotFoundError(f"Company {company_id} not found.")
                        result = await session.execute(
                            select(CompanyPipeline).where(CompanyPipeline.company_id == company_id)
                        )
                        pipeline = result.scalars().first()
                        if pipeline is None:
                            pipeline = CompanyPipeline(
                                company_id=company_id,
                                phase=phase,
                                intake_decision=infer_default_decision(company.intake_status, company.decline_reason),
                            )
                            session.add(pipeline)
                        else:
                            pipeline.phase = phase
                logger.info("Company %s moved to %s", company_id, phase.value)
                return {
                    "phase": phase.value,
                    "phase_label": phase_label(phase),
                    "column": phase_to_column(phase).value,
                }
            except IntegrityError:
                logger.debug("Pipeline record for company %s created concurrently, retrying", company_id)
        raise ConcurrencyConflict(f"Could not update the pipeline phase for company {company_id}.")

    async def update_intake(
        self,
        company_id: int,
        intake_scheduled_at: Optional[datetime] = None,
        decline_reason: Optional[DeclineReason] = None,
        lead_source: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Rewrite the intake card fields and keep the pipeline record in step.

        A decline reason moves the company to DECLINED. Clearing it sends a declined
        company back to INTAKE with a pending decision. The lead source matches a
        health system by name, case-insensitively, and is kept as free text otherwise.
        """
        if intake_scheduled_at is not None and intake_scheduled_at.tzinfo is not None:
            intake_scheduled_at = intake_scheduled_at.astimezone(timezone.utc).replace(tzinfo=None)
        decline_reason = DeclineReason(decline_reason) if decline_reason else None
        lead_text = trim_or_none(lead_source)
        for _ in range(2):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await session.execute(
                            select(Company).options(selectinload(Company.pipeline)).where(Company.id == company_id)
                        )
                        company = result.scalars().first()
                        if company is None:
                            raise NotFoundError(f"Company {company_id} not found.")

                        lead_system = None
                        if lead_text:
                            lead_system = (
                                await session.execute(
                                    select(HealthSystem)
                                    .where(HealthSystem.name_key == normalize_text(lead_text))
                                    .order_by(HealthSystem.id)
                                    .limit(1)
                                )
                            ).scalars().first()

                        company.intake_scheduled_at = intake_scheduled_at
                        if company.intake_status not in (IntakeStatus.completed, IntakeStatus.screening_evaluation):
                            company.intake_status = (
                                IntakeStatus.scheduled if intake_scheduled_at else IntakeStatus.not_scheduled
                            )
                        company.decline_reason = decline_reason
                        if lead_system is not None:
                            company.lead_source_type = LeadSourceType.health_system
                            company.lead_source_health_system_id = lead_system.id
                            company.lead_source_other = None
                        else:
                            company.lead_source_type = LeadSourceType.other
                            company.lead_source_health_system_id = None
                            company.lead_source_other = lead_text

                        pipeline = company.pipeline
                        if decline_reason is not None:
                            if pipeline is None:
                                pipeline = CompanyPipeline(company_id=company_id)
                                session.add(pipeline)
                                company.pipeline = pipeline
                            pipeline.phase = PipelinePhase.declined
                            pipeline.intake_decision = IntakeDecision.decline
                            pipeline.intake_decision_at = datetime.utcnow()
                        elif pipeline is not None and pipeline.phase == PipelinePhase.declined:
                            pipeline.phase = PipelinePhase.intake
                            pipeline.intake_decision = IntakeDecision.pending
                            pipeline.intake_decision_at = None

                        await session.flush()
                        card = describe_company(company)
                        card.update(
                            {
                                "intake_scheduled_at": intake_scheduled_at.isoformat() if intake_scheduled_at else None,
                                "intake_status": company.intake_status.value,
                                "decline_reason": decline_reason.value if decline_reason else None,
                                "lead_source": lead_system.name if lead_system is not None else (lead_text or ""),
                                "lead_source_type": company.lead_source_type.value,
                            }
                        )
                logger.info("Intake card for company %s updated, phase %s", company_id, card["phase"])
                return card
            except IntegrityError:
                logger.debug("Pipeline record for company %s created concurrently, retrying", company_id)
        raise ConcurrencyConflict(f"Could not update the intake card for company {company_id}.")

    async def list_board(self, include_declined: bool = False) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            companies = await self._companies(session)
            cards = [describe_company(company) for company in companies]

        columns = []
        for column, label in BOARD_COLUMNS:
            if column in HIDDEN_BY_DEFAULT and not include_declined:
                continue
            columns.append(
                {
                    "column": column.value,
                    "label": label,
                    "companies": [card for card in cards if card["column"] == column.value],
                }
            )
        return columns

    async def list_screening_eligible(self) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            companies = await self._companies(session)
            cards = [describe_company(company) for company in companies]
        return [card for card in cards if card["is_screening_phase"]]
