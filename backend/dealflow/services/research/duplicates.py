from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealflow.services.research.kinds import EntityKindProfile
from dealflow.services.research.types import Candidate
from dealflow.utils.identity import format_location, normalize_text, normalize_website

_LOCATION_FIELDS = ("headquarters_city", "headquarters_state", "headquarters_country")


def is_likely_duplicate(existing: Any, candidate: Candidate) -> bool:
    """Same normalised name, and no identity field known on both sides disagrees.

    Websites win when both records have one. Otherwise every location part that
    both records carry must match; a bare name match counts as a duplicate.
    """
    candidate_name = normalize_text(candidate.name)
    if not candidate_name or candidate_name != normalize_text(existing.name):
        return False

    candidate_website = normalize_website(candidate.website)
    existing_website = normalize_website(existing.website)
    if candidate_website and existing_website:
        return candidate_website == existing_website

    for key in _LOCATION_FIELDS:
        candidate_value = normalize_text(getattr(candidate, key))
        existing_value = normalize_text(getattr(existing, key))
        if candidate_value and existing_value and candidate_value != existing_value:
            return False
    return True


def duplicate_message(profile: EntityKindProfile, existing: Any) -> str:
    where = format_location(existing.headquarters_city, existing.headquarters_state, existing.headquarters_country)
    return f'Duplicate {profile.label}: "{existing.name}" already exists for {where or "same name and website"}.'


class DuplicateDetector:
    """Looks up entities of one kind sharing the candidate's normalised name. Read-only."""

    async def find_duplicate(self, session: AsyncSession, profile: EntityKindProfile, candidate: Candidate) -> Optional[Any]:
        name_key = normalize_text(candidate.name)
        if not name_key:
            return None
        result = await session.execute(
            select(profile.model).where(profile.model.name_key == name_key).order_by(profile.model.id)
        )
        for existing in result.scalars():
            if is_likely_duplicate(existing, candidate):
                return existing
        return None
