"""Unit tests for domain models."""

import hashlib

import pytest
from pydantic import ValidationError

from assessor.models.domain import (
    ChallengeDefinition,
    Criterion,
    CriterionResult,
    InspectionTarget,
    TenantAccount,
)
from assessor.models.enums import UnitFormat

HASH = hashlib.sha256(b"unit").hexdigest()


def _criterion(criterion_id: str = "c1", points: int = 10, ref: str = "c1.py") -> Criterion:
    return Criterion(
        id=criterion_id,
        name="Multi-AZ database",
        points=points,
        check_unit_ref=ref,
        check_unit_sha256=HASH,
    )


def test_challenge_definition_valid():
    """Test a valid definition and its helpers."""
    definition = ChallengeDefinition(
        id="web",
        criteria=(_criterion("c1", 10, "a.py"), _criterion("c2", 20, "b.json")),
        passing_score=80,
        check_units_location="store://challenges/web/v1/",
    )

    assert definition.max_points == 30
    assert definition.version == 1
    assert definition.check_units_location == "store://challenges/web/v1"
    assert definition.unit_location("b.json") == "store://challenges/web/v1/b.json"
    assert definition.criterion("c2").points == 20
    assert definition.criterion_for_unit("a.py").id == "c1"


def test_challenge_definition_rejects_duplicate_criterion_ids():
    """Test criterion ids must be unique within a definition."""
    with pytest.raises(ValidationError, match="unique"):
        ChallengeDefinition(
            id="web",
            criteria=(_criterion("c1"), _criterion("c1", ref="other.py")),
            passing_score=50,
            check_units_location="store://challenges/web",
        )


def test_challenge_definition_rejects_conflicting_hashes_for_shared_unit():
    """Test criteria sharing a check unit must record the same fingerprint."""
    other = Criterion(
        id="c2",
        name="Multi-AZ database again",
        points=5,
        check_unit_ref="shared.py",
        check_unit_sha256=hashlib.sha256(b"different").hexdigest(),
    )

    with pytest.raises(ValidationError, match="different hashes"):
        ChallengeDefinition(
            id="web",
            criteria=(_criterion("c1", ref="shared.py"), other),
            passing_score=50,
            check_units_location="store://challenges/web",
        )


def test_challenge_definition_allows_shared_unit_with_same_hash():
    """Test two criteria may reuse one check unit when the fingerprints agree."""
    definition = ChallengeDefinition(
        id="web",
        criteria=(_criterion("c1", ref="shared.py"), _criterion("c2", ref="shared.py")),
        passing_score=50,
        check_units_location="store://challenges/web",
    )

    assert definition.max_points == 20


def test_challenge_definition_rejects_zero_total_points():
    """Test the sum of points must be positive."""
    with pytest.raises(ValidationError, match="greater than zero"):
        ChallengeDefinition(
            id="web",
            criteria=(_criterion("c1", 0),),
            passing_score=50,
            check_units_location="store://challenges/web",
        )


def test_challenge_definition_requires_store_scheme():
    """Test unit locations must use the store:// scheme."""
    with pytest.raises(ValidationError):
        ChallengeDefinition(
            id="web",
            criteria=(_criterion(),),
            passing_score=50,
            check_units_location="https://example.com/units",
        )


def test_challenge_definition_is_immutable():
    """Test published definitions cannot be mutated."""
    definition = ChallengeDefinition(
        id="web", criteria=(_criterion(),), passing_score=50, check_units_location="store://b/p"
    )

    with pytest.raises(ValidationError):
        definition.passing_score = 10


@pytest.mark.parametrize("ref", ["/etc/passwd", "../other/unit.py", "units/../../x.py"])
def test_criterion_rejects_escaping_unit_refs(ref):
    """Test unit refs cannot escape the definition's location."""
    with pytest.raises(ValidationError):
        _criterion(ref=ref)


def test_criterion_normalises_hash_case():
    """Test upper-case hex digests are accepted and lower-cased."""
    criterion = Criterion(
        id="c1", name="n", points=1, check_unit_ref="a.py", check_unit_sha256=HASH.upper()
    )

    assert criterion.check_unit_sha256 == HASH


def test_criterion_rejects_invalid_hash():
    """Test a non SHA-256 fingerprint is rejected."""
    with pytest.raises(ValidationError):
        Criterion(id="c1", name="n", points=1, check_unit_ref="a.py", check_unit_sha256="abc")


def test_criterion_result_failed_helper():
    """Test failed results carry the classified error."""
    result = CriterionResult.failed("c1", "timeout", timeout_seconds=30)

    assert result.implemented is False
    assert result.error == "timeout"
    assert result.details == {"error": "timeout", "timeout_seconds": 30}
    assert result.points_awarded == 0


def test_tenant_account_requires_twelve_digit_account():
    """Test tenant account ids are validated."""
    with pytest.raises(ValidationError):
        TenantAccount(participant_id="p", account_id="1234", stack_name="s")


def test_inspection_target_from_tenant():
    """Test building the unit-facing target from a tenant account."""
    tenant = TenantAccount(participant_id="p", account_id="123456789012", stack_name="p-web")

    target = InspectionTarget.from_tenant(tenant)

    assert target.stack_name == "p-web"
    assert target.region == "eu-west-2"


@pytest.mark.parametrize(
    ("ref", "expected"),
    [
        ("multi_az.py", UnitFormat.SCRIPT),
        ("alarms/cpu.JSON", UnitFormat.DECLARATIVE),
        ("binary.so", None),
    ],
)
def test_unit_format_from_ref(ref, expected):
    """Test unit formats are selected by suffix."""
    assert UnitFormat.from_ref(ref) is expected
