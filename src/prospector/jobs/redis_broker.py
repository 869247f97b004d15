import asyncio
import contextlib
import json
from typing import Any, Callable, Optional

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from prospector.jobs.broker import JobBroker, MessageCallback
from prospector.main.config import Settings, get_settings
from prospector.main.exceptions import BrokerConnectionException
from prospector.main.logging import get_logger
from prospector.redis.connection import build_redis_client_kwargs

logger = get_logger(__name__)

CONNECT_ERRORS = (RedisError, OSError)

# Upper bound for a single pubsub poll so the listener notices cancellation
LISTENER_POLL_TIMEOUT = 1.0


class RedisBroker(JobBroker):
    """Redis pub/sub transport.

    Three clients are kept: a general one for stats, one for publishing and
    one dedicated to the subscription connection, which redis blocks while it
    listens.
    """

    name = "Redis broker"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], Redis]] = None,
    ):
        self.settings = settings or get_settings()
        super().__init__(shutdown_timeout=self.settings.job_shutdown_timeout_seconds)

        self._client_factory = client_factory or self._create_client
        self.client: Optional[Redis] = None
        self.publisher: Optional[Redis] = None
        self.subscriber: Optional[Redis] = None

        self._pubsub: Optional[PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._callbacks: dict[str, MessageCallback] = {}
        self._connected = False
        self._connect_lock = asyncio.Lock()

    def _create_client(self) -> Redis:
        return Redis(**build_redis_client_kwargs(self.settings, decode_responses=True))

    def _log_retry(self, retry_state: RetryCallState):
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Redis connection attempt {retry_state.attempt_number} failed, retrying",
            extra={
                "attempt": retry_state.attempt_number,
                "max_attempts": self.settings.broker_connect_max_attempts,
                "next_delay_seconds": retry_state.upcoming_sleep,
                "error": str(error),
            },
        )

    async def connect(self) -> None:
        if self._connected:
            return

        async with self._connect_lock:
            if self._connected:
                return

            settings = self.settings
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(settings.broker_connect_max_attempts),
                    wait=wait_exponential(
                        multiplier=settings.broker_connect_base_delay,
                        max=settings.broker_connect_max_delay,
                    ),
                    retry=retry_if_exception_type(CONNECT_ERRORS),
                    before_sleep=self._log_retry,
                    reraise=True,
                ):
                    with attempt:
                        await self._open_clients()
            except CONNECT_ERRORS as e:
                logger.error(
                    "Could not connect to Redis, giving up",
                    extra={
                        "redis_host": settings.redis_host,
                        "redis_port": settings.redis_port,
                        "attempts": settings.broker_connect_max_attempts,
                    },
                )
                raise BrokerConnectionException(
                    f"Could not connect to Redis at {settings.redis_host}:{settings.redis_port}"
                    f" after {settings.broker_connect_max_attempts} attempts: {e}"
                ) from e

            self._connected = True
            logger.info(
                "Redis broker connected",
                extra={"redis_host": settings.redis_host, "redis_port": settings.redis_port},
            )

    async def _open_clients(self):
        clients: list[Redis] = []
        try:
            for _ in range(3):
                client = self._client_factory()
                clients.append(client)
                await client.ping()
        except CONNECT_ERRORS:
            for client in clients:
                await self._close_client(client)
            raise

        self.client, self.publisher, self.subscriber = clients

    def is_ready(self) -> bool:
        return (
            self._connected
            and not self._shutting_down
            and self.client is not None
            and self.publisher is not None
            and self.subscriber is not None
        )

    async def publish(self, channel: str, message: Any) -> int:
        self._ensure_ready()

        payload = message if isinstance(message, (str, bytes)) else json.dumps(message, default=str)
        receivers = await self.publisher.publish(channel, payload)

        logger.debug(
            f"Published message to {channel}",
            extra={"channel": channel, "subscribers": receivers},
        )
        return int(receivers)

    async def subscribe(self, channel: str, callback: MessageCallback) -> None:
        self._ensure_ready()

        if self._pubsub is None:
            self._pubsub = self.subscriber.pubsub(ignore_subscribe_messages=True)

        if channel in self._callbacks:
            logger.warning(
                f"Replacing existing subscription callback for {channel}",
                extra={"channel": channel},
            )
        self._callbacks[channel] = callback
        await self._pubsub.subscribe(channel)

        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.create_task(
                self._listen(), name="redis-broker-listener"
            )

        logger.info(f"Subscribed to {channel}", extra={"channel": channel})

    async def unsubscribe(self, channel: str) -> None:
        # Allowed while shutting down so shutdown hooks can detach consumers
        callback = self._callbacks.pop(channel, None)
        if callback is None:
            logger.debug(f"Not subscribed to {channel}", extra={"channel": channel})
            return

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(channel)
            except RedisError:
                logger.exception(
                    f"Failed to unsubscribe from {channel}", extra={"channel": channel}
                )

        if not self._callbacks:
            await self._stop_listener()

        logger.info(f"Unsubscribed from {channel}", extra={"channel": channel})

    async def _listen(self):
        logger.debug("Redis listener started")
        while self._callbacks:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=LISTENER_POLL_TIMEOUT
                )
            except RedisError:
                logger.exception("Redis listener failed to read from subscription")
                await asyncio.sleep(LISTENER_POLL_TIMEOUT)
                continue

            if message is None or message.get("type") != "message":
                continue

            channel = message["channel"]
            callback = self._callbacks.get(channel)
            if callback is None:
                continue

            try:
                await callback(message["data"], channel)
            except Exception:
                logger.exception(
                    f"Subscription callback for {channel} failed",
                    extra={"channel": channel},
                )

        logger.debug("Redis listener stopped")

    async def _stop_listener(self):
        task = self._listener_task
        self._listener_task = None
        if task is None or task.done():
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _close_client(self, client: Redis):
        try:
            await client.aclose()
        except CONNECT_ERRORS:
            logger.exception("Failed to close Redis client")

    async def _close(self) -> None:
        self._callbacks.clear()
        await self._stop_listener()

        if self._pubsub is not None:
            try:
                await self._pubsub.aclose()
            except CONNECT_ERRORS:
                logger.exception("Failed to close Redis subscription")
            self._pubsub = None

        for client in (self.client, self.publisher, self.subscriber):
            if client is not None:
                await self._close_client(client)

        self.client = self.publisher = self.subscriber = None
        self._connected = False
        logger.info("Redis broker connections closed")

    async def get_stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "connected": self.is_ready(),
            "channels": sorted(self._callbacks),
            "listening": self._listener_task is not None and not self._listener_task.done(),
        }
        if not self.is_ready():
            return stats

        try:
            memory = await self.client.info("memory")
            keyspace = await self.client.info("keyspace")
        except RedisError:
            logger.exception("Failed to read Redis stats")
            return stats

        stats["used_memory"] = memory.get("used_memory_human")
        stats["keyspace"] = keyspace
        return stats
