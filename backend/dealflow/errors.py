"""Domain errors and their JSON rendering."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class DomainError(Exception):
    """Base for errors the API layer reports to callers."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def payload(self) -> Dict[str, Any]:
        return build_error_payload(self.code, self.message, self.details)


class ValidationError(DomainError):
    status_code = 400
    code = "validation_error"


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class DuplicateEntityError(DomainError):
    """Verification matched an existing entity. Message starts with ``Duplicate <label>:``."""

    status_code = 409
    code = "duplicate_entity"


class ResearchProcedureError(DomainError):
    """An enrichment call failed or timed out. Recorded on the job, never raised out of a batch run."""

    status_code = 502
    code = "research_procedure_error"


class ConcurrencyConflict(DomainError):
    status_code = 409
    code = "concurrency_conflict"


class ActiveResearchJobError(DomainError):
    status_code = 409
    code = "active_research_job"


async def domain_error_handler(_: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)
