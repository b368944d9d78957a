"""Unit tests for the scoring and feedback engine."""

import random

import pytest

from assessor.models.domain import AttemptRef, CriterionResult
from assessor.scoring import score
from assessor.scoring.engine import MISSING_RESULT, percentage


@pytest.fixture
def attempt(attempt_timestamp):
    return AttemptRef(
        attempt_id="attempt-1",
        participant_id="team-042",
        challenge_id="resilient-web-tier",
        attempt_timestamp=attempt_timestamp,
    )


@pytest.fixture
def two_criteria(make_definition):
    """10 point and 20 point criteria, passing score 80."""
    return make_definition({"asg.py": b"a", "rds.py": b"b"}, points=[10, 20], passing_score=80)


def test_all_implemented_scores_full_marks(two_criteria, attempt):
    """Test both criteria implemented gives 100 and a pass."""
    results = [
        CriterionResult(criterion_id="c1", implemented=True, details={"groups": 2}),
        CriterionResult(criterion_id="c2", implemented=True),
    ]

    result = score(two_criteria, results, attempt)

    assert result.score == 100
    assert result.passed is True
    assert [i.criterion_id for i in result.implemented] == ["c1", "c2"]
    assert result.implemented[0].details == {"groups": 2}
    assert result.suggestions == ()
    assert result.challenge_version == 1
    assert result.attempt_id == "attempt-1"


def test_heavier_criterion_missing_scores_33(two_criteria, attempt):
    """Test 10 of 30 points rounds to 33 and fails an 80 passing score."""
    results = [
        CriterionResult(criterion_id="c1", implemented=True),
        CriterionResult(criterion_id="c2", implemented=False, details={"multi_az": False}),
    ]

    result = score(two_criteria, results, attempt)

    assert result.score == 33
    assert result.passed is False
    assert len(result.suggestions) == 1
    suggestion = result.suggestions[0]
    assert suggestion.criterion_id == "c2"
    assert suggestion.name == "Criterion 2"
    assert suggestion.points_missed == 20
    assert suggestion.suggestion == "Improve criterion 2"


def test_timeout_scores_same_as_not_implemented(two_criteria, attempt):
    """Test a timed-out unit scores exactly like a negative result."""
    negative = score(
        two_criteria,
        [
            CriterionResult(criterion_id="c1", implemented=True),
            CriterionResult(criterion_id="c2", implemented=False),
        ],
        attempt,
    )
    timed_out = score(
        two_criteria,
        [
            CriterionResult(criterion_id="c1", implemented=True),
            CriterionResult.failed("c2", "timeout", timeout_seconds=30),
        ],
        attempt,
    )

    assert timed_out.score == negative.score == 33
    assert timed_out.passed == negative.passed
    assert timed_out.suggestions == negative.suggestions
    assert timed_out.criterion_results[1].details["error"] == "timeout"


def test_errored_result_is_never_credited(two_criteria, attempt):
    """Test implemented=True with an error is scored as not implemented."""
    results = [
        CriterionResult(criterion_id="c1", implemented=True, details={"error": "unit_error"}),
        CriterionResult(criterion_id="c2", implemented=True),
    ]

    result = score(two_criteria, results, attempt)

    assert result.score == 67
    assert result.criterion_results[0].implemented is False
    assert result.criterion_results[0].points_awarded == 0
    assert [s.criterion_id for s in result.suggestions] == ["c1"]


def test_missing_result_is_recorded(two_criteria, attempt):
    """Test a criterion with no result is scored as not implemented."""
    result = score(two_criteria, [CriterionResult(criterion_id="c2", implemented=True)], attempt)

    assert result.score == 67
    assert result.criterion_results[0].details == {"error": MISSING_RESULT}
    assert result.criterion_results[1].points_awarded == 20


def test_unknown_and_duplicate_results_are_ignored(two_criteria, attempt):
    """Test only the first result per known criterion counts."""
    results = [
        CriterionResult(criterion_id="c1", implemented=False),
        CriterionResult(criterion_id="c1", implemented=True),
        CriterionResult(criterion_id="c9", implemented=True),
        CriterionResult(criterion_id="c2", implemented=True),
    ]

    result = score(two_criteria, results, attempt)

    assert result.score == 67
    assert [r.criterion_id for r in result.criterion_results] == ["c1", "c2"]


def test_feedback_follows_definition_order(make_definition, attempt):
    """Test result order does not change the stored outcome."""
    definition = make_definition(
        {f"u{i}.py": bytes([i]) for i in range(6)}, points=[5, 10, 15, 20, 25, 30]
    )
    results = [
        CriterionResult(criterion_id=f"c{i + 1}", implemented=i % 2 == 0, details={"i": i})
        for i in range(6)
    ]
    shuffled = list(results)
    random.Random(7).shuffle(shuffled)

    first = score(definition, results, attempt)
    second = score(definition, shuffled, attempt)

    assert first == second
    assert [i.criterion_id for i in first.implemented] == ["c1", "c3", "c5"]
    assert [s.criterion_id for s in first.suggestions] == ["c2", "c4", "c6"]


def test_zero_point_criterion_still_gets_feedback(make_definition, attempt):
    """Test zero-weight criteria appear in feedback without moving the score."""
    definition = make_definition({"a.py": b"a", "b.py": b"b"}, points=[10, 0], passing_score=100)

    result = score(
        definition,
        [
            CriterionResult(criterion_id="c1", implemented=True),
            CriterionResult(criterion_id="c2", implemented=False),
        ],
        attempt,
    )

    assert result.score == 100
    assert result.passed is True
    assert result.suggestions[0].points_missed == 0


def test_passing_score_boundary_is_inclusive(make_definition, attempt):
    """Test a score equal to the passing score passes."""
    definition = make_definition(
        {f"u{i}.py": bytes([i]) for i in range(5)}, points=[20] * 5, passing_score=80
    )
    results = [CriterionResult(criterion_id=f"c{i + 1}", implemented=i < 4) for i in range(5)]

    result = score(definition, results, attempt)

    assert result.score == 80
    assert result.passed is True


@pytest.mark.parametrize(
    ("earned", "maximum", "expected"),
    [(0, 30, 0), (10, 30, 33), (20, 30, 67), (1, 8, 13), (1, 200, 1), (1, 201, 0), (30, 30, 100)],
)
def test_percentage_rounds_half_up(earned, maximum, expected):
    """Test percentage rounding to nearest with ties rounding up."""
    assert percentage(earned, maximum) == expected


def test_percentage_rejects_zero_maximum():
    """Test a zero maximum is refused."""
    with pytest.raises(ValueError):
        percentage(0, 0)
