"""Redis connection options shared by the pub/sub broker and the arq backend."""

from typing import Any

from arq.connections import RedisSettings

from prospector.main.config import Settings


def build_arq_redis_settings(settings: Settings) -> RedisSettings:
    return RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
        database=settings.redis_db or 0,
        password=settings.redis_password,
        conn_timeout=settings.redis_conn_timeout,
        conn_retries=settings.redis_conn_retries,
        conn_retry_delay=settings.redis_conn_retry_delay,
        retry_on_timeout=settings.redis_retry_on_timeout,
        max_connections=settings.redis_max_connections,
    )


def build_redis_client_kwargs(settings: Settings, *, decode_responses: bool) -> dict[str, Any]:
    """Keyword arguments for one ``redis.asyncio.Redis`` client.

    The broker opens three clients from these, so ``max_connections`` bounds
    each client's pool, not the total.
    """
    kwargs: dict[str, Any] = {
        "host": settings.redis_host,
        "port": settings.redis_port,
        "db": settings.redis_db or 0,
        "decode_responses": decode_responses,
        "socket_connect_timeout": settings.redis_conn_timeout,
        "socket_keepalive": settings.redis_socket_keepalive,
        "retry_on_timeout": settings.redis_retry_on_timeout,
        "health_check_interval": settings.redis_health_check_interval,
    }
    if settings.redis_password:
        kwargs["password"] = settings.redis_password
    if settings.redis_max_connections is not None:
        kwargs["max_connections"] = settings.redis_max_connections
    return kwargs
