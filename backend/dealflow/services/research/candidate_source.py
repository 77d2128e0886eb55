from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dealflow.config import Settings, get_settings
from dealflow.errors import ValidationError
from dealflow.services.llm.orchestrator import LLMOrchestrator
from dealflow.services.llm.types import LLMOrchestrationError, LLMRequest, LLMStage, parse_json_object
from dealflow.services.research.kinds import EntityKindProfile, get_kind_profile
from dealflow.services.research.types import Candidate
from dealflow.services.retrieval.cache import SearchCache
from dealflow.services.retrieval.search_connectors import search_external_candidates
from dealflow.utils.identity import normalize_text

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
_CACHE_NAMESPACE = "candidate-search"


@dataclass
class CandidateSearchResult:
    candidates: List[Candidate] = field(default_factory=list)
    research_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "research_used": self.research_used,
        }


def build_search_prompt(profile: EntityKindProfile, query: str, cap: int) -> str:
    return (
        f"Find up to {cap} real organisations matching the search {json.dumps(query)}. "
        f"Each result should be {profile.prompt_focus.split(':')[0]}.\n"
        "Rank the most likely match first.\n"
        'Return ONLY a JSON object: {"candidates": [{"name": str, "website": str|null, '
        '"headquarters_city": str|null, "headquarters_state": str|null, "headquarters_country": str|null, '
        '"summary": str, "source_urls": [str], "confidence": number between 0 and 1}]}'
    )


class CandidateSource:
    """Free-text search for unverified candidates: cache, then LLM web research, then web search APIs.

    When nothing answers, a single candidate named after the query is returned so
    the user can still verify it by hand.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        orchestrator: Optional[LLMOrchestrator] = None,
        cache: Optional[SearchCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._orchestrator = orchestrator or LLMOrchestrator(self._settings)
        self._cache = cache

    async def search(self, kind, query: str) -> CandidateSearchResult:
        profile = get_kind_profile(kind)
        cleaned = " ".join(str(query or "").split())
        if len(cleaned) < MIN_QUERY_LENGTH:
            raise ValidationError(f"Search query must be at least {MIN_QUERY_LENGTH} characters.")
        return await asyncio.to_thread(self._search, profile, cleaned)

    def _search(self, profile: EntityKindProfile, query: str) -> CandidateSearchResult:
        cache_key = f"{profile.kind.value}|{normalize_text(query)}"
        if self._cache is not None:
            cached = self._cache.get_json(_CACHE_NAMESPACE, cache_key)
            if isinstance(cached, dict) and isinstance(cached.get("candidates"), list):
                return CandidateSearchResult(
                    candidates=[Candidate.from_dict(row) for row in cached["candidates"] if isinstance(row, dict)],
                    research_used=bool(cached.get("research_used")),
                )

        cap = max(1, int(self._settings.candidate_search_cap))
        candidates = self._search_with_llm(profile, query, cap)
        if not candidates:
            candidates = search_external_candidates(self._settings, f"{query} {profile.label}", cap)
            if not candidates:
                logger.warning("No %s candidates found for %r, echoing the query", profile.label, query)

        if not candidates:
            return CandidateSearchResult(
                candidates=[
                    Candidate(
                        name=query,
                        summary="Automated research is unavailable right now. Check the details before verifying.",
                        confidence=0.0,
                    )
                ],
                research_used=False,
            )

        result = CandidateSearchResult(candidates=candidates, research_used=True)
        if self._cache is not None:
            self._cache.set_json(_CACHE_NAMESPACE, cache_key, result.to_dict(), self._settings.search_cache_ttl_seconds)
        return result

    def _search_with_llm(self, profile: EntityKindProfile, query: str, cap: int) -> List[Candidate]:
        request = LLMRequest(
            stage=LLMStage.candidate_search,
            prompt=build_search_prompt(profile, query, cap),
            timeout_seconds=self._settings.stage_timeout_seconds(LLMStage.candidate_search.value),
            use_web_search=True,
            expect_json=True,
            metadata={"entity_kind": profile.kind.value, "query": query},
        )
        try:
            response = self._orchestrator.run_stage(request)
        except LLMOrchestrationError as exc:
            logger.warning("LLM candidate search failed for %r, falling back to web search: %s", query, exc)
            return []

        payload = parse_json_object(response.text) or {}
        rows = payload.get("candidates") if isinstance(payload.get("candidates"), list) else []
        candidates: List[Candidate] = []
        seen = set()
        for row in rows:
            if not isinstance(row, dict):
                continue
            candidate = Candidate.from_dict(row)
            key = normalize_text(candidate.name)
            if not key or key in seen:
                continue
            seen.add(key)
            candidates.append(candidate)
        if not candidates:
            logger.warning("LLM candidate search returned no usable rows for %r", query)
        return candidates[:cap]
