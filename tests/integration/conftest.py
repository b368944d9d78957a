"""Integration test fixtures for PostgreSQL repository tests."""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from assessor.repositories.engine import init_schema
from assessor.repositories.repository import Repository

TEST_DATABASE = "test_assessment_engine"


@pytest.fixture(scope="session")
def test_engine() -> Engine:
    """Create test database and return engine.

    This is a session-scoped fixture that:
    1. Creates test_assessment_engine database
    2. Creates the registry and result tables
    3. Returns engine for test use
    4. Drops database after all tests complete
    """
    test_db_url = f"postgresql://postgres@localhost:5432/{TEST_DATABASE}"

    # Connect to default postgres database to create test database
    admin_engine = create_engine("postgresql://postgres@localhost:5432/postgres")

    with admin_engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(
            text(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                f"WHERE datname = '{TEST_DATABASE}' AND pid <> pg_backend_pid()"
            )
        )
        conn.execute(text(f"DROP DATABASE IF EXISTS {TEST_DATABASE}"))
        conn.execute(text(f"CREATE DATABASE {TEST_DATABASE}"))

    admin_engine.dispose()

    engine = create_engine(test_db_url, echo=False)
    init_schema(engine)

    yield engine

    # Cleanup: drop test database
    engine.dispose()
    admin_engine = create_engine("postgresql://postgres@localhost:5432/postgres")
    with admin_engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(
            text(
                "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                f"WHERE datname = '{TEST_DATABASE}' AND pid <> pg_backend_pid()"
            )
        )
        conn.execute(text(f"DROP DATABASE IF EXISTS {TEST_DATABASE}"))
    admin_engine.dispose()


@pytest.fixture(scope="function")
def repository(test_engine: Engine) -> Repository:
    """Create Repository instance with clean database for each test.

    Function-scoped fixture that truncates tables before each test to ensure
    test isolation.
    """
    with test_engine.connect() as conn:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        conn.execute(text("TRUNCATE challenge_definition, tenant_account, assessment_attempt"))

    return Repository(test_engine)
