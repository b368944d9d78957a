"""Synchronous assessment trigger and attempt history.

Requires API_ASSESSMENT_ENABLED=true; otherwise every endpoint answers 403.
A completed request always returns HTTP 200 with either a scored result or an
aborted attempt; the ``status`` field tells them apart.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from assessor.errors import TransientInfrastructureError
from assessor.models.domain import AttemptOutcome

logger = logging.getLogger(__name__)


def require_enabled(request: Request) -> None:
    if not request.app.state.assessment_enabled:
        raise HTTPException(status_code=403, detail="Assessment endpoints are disabled")


router = APIRouter(prefix="/assessments", dependencies=[Depends(require_enabled)])


class AssessmentRequestBody(BaseModel):
    """Request body for a synchronous assessment."""

    participant_id: str = Field(..., min_length=1, description="Participant to assess")
    challenge_id: str = Field(..., min_length=1, description="Challenge to assess against")


def get_orchestrator(request: Request):
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="Assessment engine not configured")
    return orchestrator


def get_repository(request: Request):
    repository = request.app.state.repository
    if repository is None:
        raise HTTPException(status_code=500, detail="Result store not configured")
    return repository


@router.post("", response_model=AttemptOutcome)
async def trigger_assessment(body: AssessmentRequestBody, orchestrator=Depends(get_orchestrator)):
    """Run a new assessment attempt and return its outcome."""
    logger.info(f"Assessment requested for {body.participant_id}/{body.challenge_id}")
    return await orchestrator.assess(body.participant_id, body.challenge_id)


@router.get("/{participant_id}/{challenge_id}", response_model=list[AttemptOutcome])
async def attempt_history(participant_id: str, challenge_id: str, repository=Depends(get_repository)):
    """Return all attempts for a participant and challenge, oldest first."""
    try:
        return await asyncio.to_thread(repository.list_attempts, participant_id, challenge_id)
    except TransientInfrastructureError as e:
        logger.error(f"Attempt history unavailable: {e}")
        raise HTTPException(status_code=503, detail="Result store unavailable") from e
