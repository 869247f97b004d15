import logging
import os
import sys
from typing import Literal, Optional

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    app_version: str = "0.1.0"

    # Infrastructure dependencies
    postgres_user: str
    postgres_host: str
    postgres_password: str
    postgres_port: int
    postgres_db: str
    postgres_pool_size: int = 20
    postgres_max_overflow: int = 10

    redis_host: str
    redis_port: int
    redis_password: Optional[str] = None
    redis_db: Optional[int] = None
    redis_conn_timeout: int = 10
    redis_conn_retries: int = 5
    redis_conn_retry_delay: int = 1
    redis_retry_on_timeout: bool = True
    redis_socket_keepalive: bool = True
    redis_health_check_interval: int = 30
    redis_max_connections: Optional[int] = None

    # Job layer
    # "pubsub" broadcasts envelopes over a Redis channel and drops overflow,
    # "arq" stores them as queryable records consumed by a separate arq worker
    job_backend: Literal["pubsub", "arq"] = "pubsub"
    job_channel: str = "job_queue"
    arq_queue_name: str = "arq:queue"
    worker_max_jobs: int = 5
    job_shutdown_timeout_seconds: float = 30.0
    run_consumer_in_api: bool = True

    # Broker connect backoff: base delay doubles per attempt up to the cap
    broker_connect_max_attempts: int = 10
    broker_connect_base_delay: float = 1.0
    broker_connect_max_delay: float = 30.0

    # Lead discovery agent API
    agent_api_url: str = "http://localhost"
    agent_api_port: Optional[int] = 8000
    agent_api_auth_token: str = "default-token"
    agent_llm_type: str = "GEMINI"
    agent_api_timeout_seconds: float = 60 * 30  # lead generation can take a while

    # Workflows left RUNNING longer than this are considered orphaned
    stuck_workflow_timeout_minutes: int = 60 * 2

    # Server
    api_prefix: str = "/api/v1"

    # Dev
    testing: bool = False
    dev: bool = False

    @model_validator(mode="after")
    def validate_worker_settings(self):
        """Ensure job-layer configuration values are sane."""
        if self.worker_max_jobs <= 0:
            logging.error(
                "WORKER_MAX_JOBS must be greater than zero. Current value: %s",
                self.worker_max_jobs,
            )
            sys.exit(1)

        if self.job_shutdown_timeout_seconds <= 0:
            logging.error(
                "JOB_SHUTDOWN_TIMEOUT_SECONDS must be greater than zero. Current value: %s",
                self.job_shutdown_timeout_seconds,
            )
            sys.exit(1)

        if self.broker_connect_max_attempts <= 0:
            logging.error(
                "BROKER_CONNECT_MAX_ATTEMPTS must be greater than zero. Current value: %s",
                self.broker_connect_max_attempts,
            )
            sys.exit(1)

        if self.broker_connect_base_delay < 0 or self.broker_connect_max_delay < 0:
            logging.error(
                "BROKER_CONNECT_BASE_DELAY and BROKER_CONNECT_MAX_DELAY cannot be negative."
            )
            sys.exit(1)

        if self.broker_connect_max_delay < self.broker_connect_base_delay:
            logging.warning(
                "BROKER_CONNECT_MAX_DELAY (%s) is lower than BROKER_CONNECT_BASE_DELAY (%s)."
                " Every retry will wait the capped delay.",
                self.broker_connect_max_delay,
                self.broker_connect_base_delay,
            )

        if self.agent_api_auth_token == "default-token" and not (self.dev or self.testing):
            logging.warning(
                "AGENT_API_AUTH_TOKEN is not set. Lead discovery calls will use a placeholder token."
            )

        return self

    @computed_field
    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:"
            f"{self.postgres_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def agent_api_base_url(self) -> str:
        base_url = self.agent_api_url.rstrip("/")
        if self.agent_api_port is None:
            return base_url
        return f"{base_url}:{self.agent_api_port}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    global _settings
    _settings = settings


def reset_settings() -> None:
    global _settings
    _settings = None


def get_loglevel() -> int:
    # Unknown names fall back to INFO
    level = logging.getLevelName(os.getenv("LOGLEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO
