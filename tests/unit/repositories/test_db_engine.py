"""Unit tests for the database engine factory."""

from unittest.mock import MagicMock, patch

from assessor.config import AWSConfig, DatabaseSettings
from assessor.repositories.engine import (
    IAM_TOKEN_POOL_RECYCLE_SECONDS,
    _get_iam_auth_token,
    _url_with_password,
    create_db_engine,
)


def test_url_with_password():
    settings = DatabaseSettings(host="db", user="assessor", iam_authentication=False)

    assert _url_with_password(settings, "pw") == "postgresql://assessor:pw@db:5432/assessment_engine"
    assert _url_with_password(settings, "") == "postgresql://assessor@db:5432/assessment_engine"


def test_iam_auth_token_uses_rds_client():
    settings = DatabaseSettings(host="db.internal", port=5432, user="assessor")
    client = MagicMock()
    client.generate_db_auth_token.return_value = "token"

    with patch("assessor.repositories.engine.boto3.client", return_value=client) as factory:
        assert _get_iam_auth_token(settings, "eu-west-2") == "token"

    factory.assert_called_once_with("rds", region_name="eu-west-2")
    client.generate_db_auth_token.assert_called_once_with(
        DBHostname="db.internal", Port=5432, DBUsername="assessor", Region="eu-west-2"
    )


def test_iam_engine_recycles_connections():
    settings = DatabaseSettings(host="db.internal", user="assessor", iam_authentication=True)

    engine = create_db_engine(settings, AWSConfig(region="eu-west-2"))

    assert engine.pool._recycle == IAM_TOKEN_POOL_RECYCLE_SECONDS
    assert engine.url.password is None


def test_local_engine_uses_static_password():
    settings = DatabaseSettings(
        host="localhost", user="postgres", iam_authentication=False, local_password="local"
    )

    engine = create_db_engine(settings, use_null_pool=True)

    assert engine.url.password == "local"
    assert engine.url.database == "assessment_engine"
