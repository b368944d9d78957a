"""Construction of the assessment engine from environment configuration."""

import logging

from assessor.aws.s3 import S3ObjectStore
from assessor.aws.sts import StsDelegationAuthority
from assessor.config import (
    AWSConfig,
    BrokerConfig,
    DatabaseSettings,
    LoaderConfig,
    OrchestratorConfig,
    SandboxConfig,
)
from assessor.credentials.broker import CredentialBroker
from assessor.loader.loader import CheckUnitLoader
from assessor.loader.policy import SafetyPolicy
from assessor.orchestrator import AssessmentOrchestrator
from assessor.repositories.engine import create_db_engine
from assessor.repositories.repository import Repository
from assessor.sandbox.executor import SandboxedExecutor

logger = logging.getLogger(__name__)


def build_orchestrator(
    aws_config: AWSConfig | None = None,
    db_settings: DatabaseSettings | None = None,
) -> tuple[AssessmentOrchestrator, Repository]:
    """Wire every engine component from configuration.

    Returns:
        The orchestrator and the repository it uses as registry and result sink
    """
    aws_config = aws_config or AWSConfig()
    db_settings = db_settings or DatabaseSettings()
    broker_config = BrokerConfig()
    loader_config = LoaderConfig()
    sandbox_config = SandboxConfig()

    engine = create_db_engine(db_settings, aws_config)
    repository = Repository(engine)

    store = S3ObjectStore(
        region=aws_config.region,
        endpoint_url=aws_config.endpoint_url,
        timeout_seconds=sandbox_config.api_timeout_seconds,
    )
    authority = StsDelegationAuthority(
        region=aws_config.region,
        endpoint_url=broker_config.sts_endpoint_url or aws_config.endpoint_url,
        timeout_seconds=sandbox_config.api_timeout_seconds,
    )
    loader = CheckUnitLoader(
        store=store,
        policy=SafetyPolicy(sandbox_config.allowed_modules, loader_config.max_unit_bytes),
        config=loader_config,
    )

    orchestrator = AssessmentOrchestrator(
        registry=repository,
        result_sink=repository,
        broker=CredentialBroker(broker_config, authority),
        loader=loader,
        executor=SandboxedExecutor(sandbox_config),
        config=OrchestratorConfig(),
    )
    logger.info("Assessment engine initialised")
    return orchestrator, repository
