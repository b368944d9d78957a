"""Assessment request message schema shared by the SQS and HTTP triggers."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class AssessmentRequest(BaseModel):
    """Inbound request to assess one participant against one challenge.

    Attributes:
        participant_id: Participant whose deployed infrastructure is assessed
        challenge_id: Challenge whose criteria are applied
        request_id: Caller-supplied correlation id (optional)
        submitted_at: ISO 8601 timestamp when the request was submitted
    """

    participant_id: str = Field(..., min_length=1, description="Participant identifier")
    challenge_id: str = Field(..., min_length=1, description="Challenge identifier")
    request_id: str | None = Field(default=None, description="Correlation id from the caller")
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {
        "json_schema_extra": {
            "example": {
                "participant_id": "team-042",
                "challenge_id": "resilient-web-tier",
                "request_id": "550e8400-e29b-41d4-a716-446655440000",
                "submitted_at": "2025-10-15T14:30:00Z",
            }
        }
    }
