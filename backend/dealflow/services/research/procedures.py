from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from dealflow.config import Settings, get_settings
from dealflow.errors import ResearchProcedureError
from dealflow.models import EntityKind
from dealflow.services.llm.orchestrator import LLMOrchestrator
from dealflow.services.llm.types import LLMOrchestrationError, LLMRequest, LLMStage, parse_json_object
from dealflow.services.research.kinds import ENTITY_KINDS, EntityKindProfile
from dealflow.services.research.types import ResearchResult, ResearchSubject
from dealflow.utils.identity import trim_or_none

logger = logging.getLogger(__name__)


def build_enrichment_prompt(profile: EntityKindProfile, subject: ResearchSubject) -> str:
    known = {
        "name": subject.search_name,
        "website": subject.website,
        "headquarters_city": subject.headquarters_city,
        "headquarters_state": subject.headquarters_state,
        "headquarters_country": subject.headquarters_country,
    }
    known.update({k: v for k, v in subject.entity_fields.items() if k not in known or not known[k]})
    known = {k: v for k, v in known.items() if v not in (None, "")}
    fields = ", ".join(profile.enrichable_fields)
    related = "; ".join(
        f"{collection.key} (objects with {', '.join(collection.field_rules)})" for collection in profile.related
    )
    return (
        f"You are researching {profile.prompt_focus}.\n"
        f"Known details (JSON): {json.dumps(known, default=str)}\n\n"
        "Use web search to confirm the organisation and gather current, verifiable facts.\n"
        "Return ONLY a JSON object with these keys:\n"
        '  "summary": one or two sentences describing the organisation,\n'
        '  "research_notes": a short markdown briefing with the key findings,\n'
        f'  "attributes": an object with any of these fields you could verify: {fields},\n'
        f'  "related": an object with these lists, each complete as of today: {related},\n'
        '  "source_urls": a list of URLs you relied on.\n'
        "Omit attributes you could not verify. Do not guess."
    )


class LLMResearchProcedure:
    """Enriches one entity through the ``entity_enrichment`` LLM stage."""

    def __init__(
        self,
        profile: EntityKindProfile,
        orchestrator: Optional[LLMOrchestrator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._profile = profile
        self._settings = settings or get_settings()
        self._orchestrator = orchestrator or LLMOrchestrator(self._settings)

    async def enrich(self, subject: ResearchSubject) -> ResearchResult:
        request = LLMRequest(
            stage=LLMStage.entity_enrichment,
            prompt=build_enrichment_prompt(self._profile, subject),
            timeout_seconds=self._settings.stage_timeout_seconds(LLMStage.entity_enrichment.value),
            use_web_search=True,
            expect_json=True,
            metadata={"entity_kind": subject.kind.value, "entity_id": subject.entity_id, "job_id": subject.job_id},
        )
        try:
            response = await asyncio.to_thread(self._orchestrator.run_stage, request)
        except LLMOrchestrationError as exc:
            raise ResearchProcedureError(
                str(exc),
                details={"attempts": [attempt.label() for attempt in exc.attempts]},
            ) from exc
        logger.info(
            "Enrichment for %s %s answered by %s:%s",
            subject.kind.value, subject.entity_id, response.provider, response.model,
        )
        return parse_research_payload(response.text)


def parse_research_payload(text: str) -> ResearchResult:
    payload = parse_json_object(text)
    if not payload:
        raise ResearchProcedureError("Research response was not a JSON object.")
    summary = trim_or_none(payload.get("summary")) if isinstance(payload.get("summary"), str) else None
    if not summary:
        raise ResearchProcedureError("Research response is missing a summary.")
    notes = payload.get("research_notes")
    attributes: Dict[str, Any] = payload.get("attributes") if isinstance(payload.get("attributes"), dict) else {}
    related: Dict[str, List[Dict[str, Any]]] = {}
    if isinstance(payload.get("related"), dict):
        related = {
            str(key): [entry for entry in entries if isinstance(entry, dict)]
            for key, entries in payload["related"].items()
            if isinstance(entries, list)
        }
    urls = payload.get("source_urls")
    source_urls: List[str] = [str(url).strip() for url in urls if str(url or "").strip()] if isinstance(urls, list) else []
    return ResearchResult(
        summary=summary,
        research_notes=trim_or_none(notes) if isinstance(notes, str) else None,
        attributes=attributes,
        related=related,
        source_urls=source_urls,
    )


def build_default_procedures(
    settings: Optional[Settings] = None,
    orchestrator: Optional[LLMOrchestrator] = None,
) -> Dict[EntityKind, LLMResearchProcedure]:
    settings = settings or get_settings()
    orchestrator = orchestrator or LLMOrchestrator(settings)
    return {kind: LLMResearchProcedure(profile, orchestrator, settings) for kind, profile in ENTITY_KINDS.items()}
