"""SQLAlchemy engine factory for the registry and result database.

Supports both local development (static password) and CDP cloud deployment
(IAM authentication with short-lived RDS tokens).
"""

import logging
import os

import boto3
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool, QueuePool

from assessor.config import AWSConfig, DatabaseSettings
from assessor.models.db import Base

logger = logging.getLogger(__name__)

# Token lifetime is 15 minutes; recycle connections at 10 minutes
# to ensure fresh tokens before expiry
IAM_TOKEN_POOL_RECYCLE_SECONDS = 600


def _get_iam_auth_token(settings: DatabaseSettings, region: str) -> str:
    """Generate a short-lived IAM authentication token for RDS."""
    client = boto3.client("rds", region_name=region)
    token = client.generate_db_auth_token(
        DBHostname=settings.host,
        Port=settings.port,
        DBUsername=settings.user,
        Region=region,
    )
    logger.debug("Generated IAM auth token for RDS connection")
    return token


def _url_with_password(settings: DatabaseSettings, password: str) -> str:
    if not password:
        return settings.connection_url
    return settings.connection_url.replace(f"{settings.user}@", f"{settings.user}:{password}@")


def create_db_engine(
    settings: DatabaseSettings | None = None,
    aws_config: AWSConfig | None = None,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    use_null_pool: bool = False,
) -> Engine:
    """Create a SQLAlchemy engine from database settings.

    When IAM authentication is enabled a fresh token is injected for every new
    connection, TLS is required and pooled connections are recycled before the
    token expires.

    Args:
        settings: Database connection settings. If None, uses default settings.
        aws_config: AWS configuration for region. If None, uses AWS_REGION env var.
        pool_size: Number of connections to keep in the pool (default: 5)
        max_overflow: Max overflow connections beyond pool_size (default: 10)
        echo: Enable SQLAlchemy query logging (default: False)
        use_null_pool: Use NullPool instead of QueuePool (default: False)

    Returns:
        Configured SQLAlchemy Engine instance
    """
    if settings is None:
        settings = DatabaseSettings()

    region = aws_config.region if aws_config else os.environ.get("AWS_REGION", "eu-west-2")

    connect_args: dict = {}
    if settings.iam_authentication:
        connect_args["sslmode"] = settings.ssl_mode
        logger.info(f"SSL enabled with sslmode={settings.ssl_mode} for IAM authentication")

    if use_null_pool:
        password = (
            _get_iam_auth_token(settings, region)
            if settings.iam_authentication
            else settings.local_password
        )
        return create_engine(
            _url_with_password(settings, password),
            poolclass=NullPool,
            echo=echo,
            connect_args=connect_args,
        )

    if settings.iam_authentication:
        engine = create_engine(
            settings.connection_url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=IAM_TOKEN_POOL_RECYCLE_SECONDS,
            pool_pre_ping=True,
            echo=echo,
            connect_args=connect_args,
        )

        @event.listens_for(engine, "do_connect")
        def provide_token(_dialect, _conn_rec, _cargs, cparams):
            """Inject fresh IAM token before each connection."""
            cparams["password"] = _get_iam_auth_token(settings, region)

        logger.info(
            "Created engine with IAM authentication (pool_recycle=%ds)",
            IAM_TOKEN_POOL_RECYCLE_SECONDS,
        )
        return engine

    engine = create_engine(
        _url_with_password(settings, settings.local_password),
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        echo=echo,
    )
    logger.info("Created engine with local authentication")
    return engine


def init_schema(engine: Engine) -> None:
    """Create registry and result tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema initialised")
