"""Transport contract shared by the job producer and consumer."""

import asyncio
import signal
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from prospector.main.exceptions import NotReadyException
from prospector.main.logging import get_logger

logger = get_logger(__name__)

MessageCallback = Callable[[str, str], Awaitable[None]]
ShutdownHook = Callable[[], Awaitable[Any]]


class JobBroker(ABC):
    """Connection owner for a publish/subscribe transport.

    Subclasses implement the transport operations. Shutdown ordering, hook
    execution and signal handling live here so every transport drains and
    closes the same way: hooks first (each bounded by ``shutdown_timeout``),
    then the transport itself (bounded by the same timeout).
    """

    name = "broker"

    def __init__(self, shutdown_timeout: float = 30.0):
        self.shutdown_timeout = shutdown_timeout
        self._shutdown_hooks: list[ShutdownHook] = []
        self._shutting_down = False
        self._signal_received = False
        self._shutdown_task: asyncio.Task | None = None
        self._closed = asyncio.Event()

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    async def publish(self, channel: str, message: Any) -> int: ...

    @abstractmethod
    async def subscribe(self, channel: str, callback: MessageCallback) -> None: ...

    @abstractmethod
    async def unsubscribe(self, channel: str) -> None: ...

    @abstractmethod
    async def _close(self) -> None:
        """Release listener and connections."""

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def _ensure_ready(self):
        if not self.is_ready():
            raise NotReadyException(f"{self.name} not connected")

    def add_shutdown_hook(self, hook: ShutdownHook) -> None:
        if hook not in self._shutdown_hooks:
            self._shutdown_hooks.append(hook)

    async def graceful_shutdown(self) -> None:
        if self._shutting_down:
            logger.info(f"{self.name} shutdown already in progress or completed")
            return

        self._shutting_down = True
        logger.info(
            f"{self.name} graceful shutdown started",
            extra={"hooks": len(self._shutdown_hooks), "timeout_seconds": self.shutdown_timeout},
        )

        for hook in list(self._shutdown_hooks):
            hook_name = getattr(hook, "__qualname__", repr(hook))
            try:
                await asyncio.wait_for(hook(), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Shutdown hook {hook_name} timed out, continuing shutdown",
                    extra={"hook": hook_name, "timeout_seconds": self.shutdown_timeout},
                )
            except Exception:
                logger.exception(
                    f"Shutdown hook {hook_name} failed, continuing shutdown",
                    extra={"hook": hook_name},
                )

        try:
            await asyncio.wait_for(self._close(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Closing {self.name} connections timed out",
                extra={"timeout_seconds": self.shutdown_timeout},
            )
        finally:
            self._closed.set()

        logger.info(f"{self.name} graceful shutdown completed")

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                logger.warning(f"Signal handlers are not supported on this platform ({sig.name})")
                return

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._signal_received:
            logger.warning(
                f"Received {sig.name} again, shutdown already scheduled",
                extra={"signal": sig.name},
            )
            return

        self._signal_received = True
        logger.info(f"Received {sig.name}, shutting down", extra={"signal": sig.name})
        self._shutdown_task = asyncio.get_running_loop().create_task(self.graceful_shutdown())

    async def get_stats(self) -> dict[str, Any]:
        return {"connected": self.is_ready()}
