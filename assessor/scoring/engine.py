"""Scoring and feedback engine.

``score`` is a pure function of the definition, the raw criterion results
and the attempt identity. Feedback follows the definition's criterion order,
so concurrent execution cannot change the stored result.
"""

import logging
from collections.abc import Iterable

from assessor.models.domain import (
    AssessmentResult,
    AttemptRef,
    ChallengeDefinition,
    CriterionResult,
    ImplementedCriterion,
    Suggestion,
)

logger = logging.getLogger(__name__)

MISSING_RESULT = "missing_result"


def percentage(earned: int, maximum: int) -> int:
    """Integer percentage rounded to nearest, ties rounding up."""
    if maximum <= 0:
        msg = "Maximum points must be greater than zero"
        raise ValueError(msg)
    return (200 * earned + maximum) // (2 * maximum)


def _first_result_per_criterion(
    definition: ChallengeDefinition, results: Iterable[CriterionResult]
) -> dict[str, CriterionResult]:
    known = {c.id for c in definition.criteria}
    by_id: dict[str, CriterionResult] = {}
    for result in results:
        if result.criterion_id not in known:
            logger.warning(f"Ignoring result for unknown criterion {result.criterion_id}")
            continue
        if result.criterion_id in by_id:
            logger.warning(f"Ignoring duplicate result for criterion {result.criterion_id}")
            continue
        by_id[result.criterion_id] = result
    return by_id


def score(
    definition: ChallengeDefinition,
    results: Iterable[CriterionResult],
    attempt: AttemptRef,
) -> AssessmentResult:
    """Convert raw criterion results into a weighted score with feedback.

    Args:
        definition: Challenge definition the attempt was assessed against
        results: One result per criterion, in any order
        attempt: Identity of the attempt being scored

    Returns:
        The scored assessment result
    """
    by_id = _first_result_per_criterion(definition, results)

    scored: list[CriterionResult] = []
    implemented: list[ImplementedCriterion] = []
    suggestions: list[Suggestion] = []
    earned = 0

    for criterion in definition.criteria:
        raw = by_id.get(criterion.id) or CriterionResult.failed(criterion.id, MISSING_RESULT)
        credited = raw.implemented and raw.error is None
        points = criterion.points if credited else 0
        earned += points
        scored.append(
            CriterionResult(
                criterion_id=criterion.id,
                implemented=credited,
                details=raw.details,
                points_awarded=points,
            )
        )
        if credited:
            implemented.append(
                ImplementedCriterion(
                    criterion_id=criterion.id,
                    name=criterion.name,
                    points=criterion.points,
                    details=raw.details,
                )
            )
        else:
            suggestions.append(
                Suggestion(
                    criterion_id=criterion.id,
                    name=criterion.name,
                    points_missed=criterion.points,
                    suggestion=criterion.suggestion_text,
                )
            )

    total = percentage(earned, definition.max_points)
    return AssessmentResult(
        attempt_id=attempt.attempt_id,
        participant_id=attempt.participant_id,
        challenge_id=attempt.challenge_id,
        challenge_version=definition.version,
        attempt_timestamp=attempt.attempt_timestamp,
        score=total,
        passed=total >= definition.passing_score,
        implemented=tuple(implemented),
        suggestions=tuple(suggestions),
        criterion_results=tuple(scored),
    )
