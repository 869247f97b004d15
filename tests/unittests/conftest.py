import pytest

from prospector.main.config import Settings, reset_settings


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings with explicit values for unit tests.

    Provides a clean, isolated configuration that doesn't depend on the
    .env file or environment variables.
    """
    return Settings(
        # Minimal database settings (not used in unit tests)
        postgres_user="unit_test_user",
        postgres_host="localhost",
        postgres_password="unit_test_password",
        postgres_port=5432,
        postgres_db="unit_test_db",

        # Redis settings (not used in unit tests)
        redis_host="localhost",
        redis_port=6379,

        # Keep retries and drains fast
        broker_connect_max_attempts=3,
        broker_connect_base_delay=0,
        broker_connect_max_delay=0,
        job_shutdown_timeout_seconds=1.0,

        agent_api_url="http://agent.test",
        agent_api_port=9000,
        agent_api_auth_token="unit-test-token",

        # Testing mode
        testing=True,
        dev=True,
    )


@pytest.fixture(autouse=True)
def reset_settings_after_test():
    """Reset settings after each test to prevent state leakage."""
    yield
    reset_settings()
