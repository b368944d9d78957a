"""Configuration for the Dynamic Assessment Engine.

Includes configuration for:
- Cross-account credential delegation (BrokerConfig with BROKER_ prefix)
- Check unit fetching and caching (LoaderConfig with LOADER_ prefix)
- Sandboxed execution limits (SandboxConfig with SANDBOX_ prefix)
- Attempt orchestration (OrchestratorConfig with ASSESS_ prefix)
- Registry/result database connection (DatabaseSettings with DB_ prefix)
- AWS resources and worker polling (AWSConfig, WorkerConfig)
- HTTP API server (ApiServerConfig with API_ prefix)

Configuration can be overridden via:
1. Environment variables (e.g., SANDBOX_DEFAULT_TIMEOUT_SECONDS=45, ASSESS_MAX_CONCURRENCY=8)
2. .env file in the current directory
3. Default values in code
"""

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard platform limits. These are NOT configurable.
MAX_CREDENTIAL_LIFETIME_SECONDS = 900
UNIT_TIMEOUT_CEILING_SECONDS = 120


class AWSConfig(BaseSettings):
    """AWS resource configuration for ECS worker deployment."""

    model_config = SettingsConfigDict(
        env_prefix="AWS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    region: str = Field(default="eu-west-2")

    # SQS configuration (asynchronous trigger variant)
    sqs_queue_url: str | None = Field(default=None, description="Inbound assessment request queue")
    notification_queue_url: str | None = Field(
        default=None, description="Queue that receives finished assessment outcomes"
    )

    # Optional endpoint URL for LocalStack (local development)
    endpoint_url: str | None = Field(default=None, description="Override AWS endpoint for LocalStack")


class BrokerConfig(BaseSettings):
    """Configuration for delegated cross-account credentials.

    Can be overridden via environment variables with BROKER_ prefix:
    - BROKER_ROLE_NAME
    - BROKER_EXTERNAL_ID
    - BROKER_DURATION_SECONDS
    - BROKER_MAX_ATTEMPTS

    Attributes:
        role_name: Read-only role the tenant creates in their account
        external_id: Fixed shared secret bound into the role's trust policy
        duration_seconds: Local lifetime of an issued credential (never above 15 minutes)
        max_attempts: Total issuance attempts when throttled
        backoff_base_seconds: First backoff delay before jitter
        backoff_max_seconds: Upper bound on a single backoff delay
        sts_endpoint_url: Override the STS endpoint (LocalStack)
    """

    model_config = SettingsConfigDict(
        env_prefix="BROKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    role_name: str = Field(
        default="AssessmentReadOnlyRole", description="Least-privilege role assumed in tenant accounts"
    )
    external_id: str = Field(description="External identifier bound into the trust relationship")
    duration_seconds: int = Field(
        default=MAX_CREDENTIAL_LIFETIME_SECONDS,
        gt=0,
        le=MAX_CREDENTIAL_LIFETIME_SECONDS,
        description="Credential lifetime (seconds)",
    )
    max_attempts: int = Field(default=3, ge=1, le=3, description="Issuance attempts when throttled")
    backoff_base_seconds: float = Field(default=0.5, ge=0)
    backoff_max_seconds: float = Field(default=4.0, ge=0)
    sts_endpoint_url: str | None = Field(default=None, description="Override STS endpoint")

    @field_validator("role_name", "external_id")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "Delegation role name and external id cannot be empty"
            raise ValueError(msg)
        return v


class LoaderConfig(BaseSettings):
    """Check unit fetch and cache configuration.

    Attributes:
        cache_max_bytes: Total size budget of validated units held in memory
        max_unit_bytes: Largest unit the safety policy admits
        fetch_max_attempts: Object store attempts before giving up
        backoff_base_seconds: First backoff delay before jitter
        backoff_max_seconds: Upper bound on a single backoff delay
    """

    model_config = SettingsConfigDict(
        env_prefix="LOADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    cache_max_bytes: int = Field(default=64 * 1024 * 1024, ge=0)
    max_unit_bytes: int = Field(default=256 * 1024, gt=0)
    fetch_max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=0.2, ge=0)
    backoff_max_seconds: float = Field(default=2.0, ge=0)


DEFAULT_ALLOWED_MODULES = [
    "json",
    "re",
    "math",
    "datetime",
    "itertools",
    "functools",
    "collections",
    "statistics",
]

DEFAULT_ALLOWED_SERVICES = [
    "autoscaling",
    "cloudformation",
    "cloudwatch",
    "dynamodb",
    "ec2",
    "ecs",
    "elbv2",
    "lambda",
    "rds",
    "route53",
    "s3",
    "sns",
    "sqs",
]


class SandboxConfig(BaseSettings):
    """Per-invocation isolation limits for check unit execution.

    Can be overridden via environment variables with SANDBOX_ prefix:
    - SANDBOX_DEFAULT_TIMEOUT_SECONDS
    - SANDBOX_MEMORY_LIMIT_MB
    - SANDBOX_CPU_LIMIT_SECONDS
    - SANDBOX_ENV_ALLOWLIST (JSON list)
    - SANDBOX_ALLOWED_SERVICES (JSON list)

    Attributes:
        default_timeout_seconds: Wall-clock timeout when the challenge sets none
        timeout_ceiling_seconds: Platform ceiling for any per-challenge timeout
        memory_limit_mb: Address space ceiling of a unit process
        cpu_limit_seconds: CPU time ceiling of a unit process
        env_allowlist: Environment variables a unit process may inherit
        allowed_modules: Modules script units may import
        allowed_services: Control-plane services reachable through ctx.client()
        inspection_endpoint_url: Override endpoint for inspection clients (LocalStack)
        max_details_bytes: Serialized size ceiling for a unit's details payload
        api_timeout_seconds: Connect/read timeout for inspection calls
    """

    model_config = SettingsConfigDict(
        env_prefix="SANDBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    default_timeout_seconds: int = Field(default=30, gt=0, le=UNIT_TIMEOUT_CEILING_SECONDS)
    timeout_ceiling_seconds: int = Field(
        default=UNIT_TIMEOUT_CEILING_SECONDS, gt=0, le=UNIT_TIMEOUT_CEILING_SECONDS
    )
    memory_limit_mb: int = Field(default=1024, ge=64)
    cpu_limit_seconds: int = Field(default=20, ge=1)
    env_allowlist: list[str] = Field(default_factory=lambda: ["PATH", "LANG", "LC_ALL", "TZ"])
    allowed_modules: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_MODULES))
    allowed_services: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_SERVICES))
    inspection_endpoint_url: str | None = Field(default=None)
    max_details_bytes: int = Field(default=8192, ge=256)
    api_timeout_seconds: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def default_within_ceiling(self) -> "SandboxConfig":
        if self.default_timeout_seconds > self.timeout_ceiling_seconds:
            msg = "default_timeout_seconds cannot exceed timeout_ceiling_seconds"
            raise ValueError(msg)
        return self

    def effective_timeout(self, requested: float | None) -> float:
        """Clamp a requested unit timeout to the platform ceiling.

        Args:
            requested: Per-challenge timeout in seconds, or None for the default

        Returns:
            Timeout in seconds that will actually be enforced
        """
        if requested is None or requested <= 0:
            return float(self.default_timeout_seconds)
        return float(min(requested, self.timeout_ceiling_seconds))


class OrchestratorConfig(BaseSettings):
    """Attempt-level orchestration settings.

    Attributes:
        attempt_deadline_seconds: Outer deadline for the execution phase of one attempt
        max_concurrency: Platform-wide ceiling on concurrent units per attempt
        partial_credit_on_validation_failure: Score a unit that fails integrity/policy
            checks as not-implemented instead of aborting the attempt
        registry_max_attempts: Registry/result sink attempts before giving up
    """

    model_config = SettingsConfigDict(
        env_prefix="ASSESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    attempt_deadline_seconds: float = Field(default=300.0, gt=0)
    max_concurrency: int = Field(default=16, ge=1, le=256)
    partial_credit_on_validation_failure: bool = Field(default=True)
    registry_max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=0.2, ge=0)
    backoff_max_seconds: float = Field(default=2.0, ge=0)


class DatabaseSettings(BaseSettings):
    """Database connection configuration for the registry and result store.

    Supports two modes:
    1. Local development: Uses static password from DB_LOCAL_PASSWORD
    2. Cloud (IAM): Uses IAM authentication with short-lived RDS tokens

    Environment variables:
    - DB_HOST: Database host (default: localhost)
    - DB_PORT: Database port (default: 5432)
    - DB_DATABASE: Database name (default: assessment_engine)
    - DB_USER: Database user (default: postgres)
    - DB_IAM_AUTHENTICATION: Enable IAM auth (default: true)
    - DB_LOCAL_PASSWORD: Static password for local dev (default: empty)
    - DB_SSL_MODE: SSL mode - require, verify-ca, verify-full (default: require)
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="assessment_engine", description="Database name")
    user: str = Field(default="postgres", description="Database user")

    iam_authentication: bool = Field(
        default=True,
        description="Use IAM authentication for RDS (set to false for local dev)",
    )
    local_password: str = Field(default="", description="Static password for local development")
    ssl_mode: str = Field(
        default="require",
        description="SSL mode for database connections (require, verify-ca, verify-full)",
    )

    @property
    def connection_url(self) -> str:
        """Build connection URL from individual parameters.

        Password is not included - it's injected by the engine factory
        (either static password or IAM token).
        """
        return f"postgresql://{self.user}@{self.host}:{self.port}/{self.database}"


class WorkerConfig(BaseSettings):
    """Worker polling and processing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SQS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    wait_time_seconds: int = Field(default=20, ge=1, le=20)
    visibility_timeout: int = Field(default=600, ge=30, le=43200)
    max_messages: int = Field(default=1, ge=1, le=10)
    graceful_shutdown_timeout: int = Field(default=30, ge=0, le=300)


class ApiServerConfig(BaseSettings):
    """Configuration for the HTTP API server.

    Can be overridden via environment variables with API_ prefix:
    - API_PORT (default: 8085)
    - API_ASSESSMENT_ENABLED: Enable synchronous assessment endpoints (default: false)

    The API server provides:
    - /health - Health check endpoint for ECS monitoring
    - /assessments - Synchronous assessment trigger and attempt history
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    port: int = Field(default=8085, ge=1, le=65535, description="Port for the API server")
    assessment_enabled: bool = Field(
        default=False,
        description="Enable HTTP assessment endpoints (default: false)",
    )
