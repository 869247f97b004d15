import time

import aiohttp

from prospector.main.logging import get_logger

logger = get_logger(__name__)


class AioHttpClient:
    session: aiohttp.ClientSession = None

    def __init__(self, total_timeout: float = 30.0, connect_timeout: float = 10.0):
        self.total_timeout = total_timeout
        self.connect_timeout = connect_timeout

    def _create_trace_config(self) -> aiohttp.TraceConfig:
        """Create TraceConfig for connection timing observability."""
        trace = aiohttp.TraceConfig()

        async def on_request_start(session, trace_config_ctx, params):
            trace_config_ctx._request_start_time = time.perf_counter()

        async def on_request_end(session, trace_config_ctx, params):
            if hasattr(trace_config_ctx, "_request_start_time"):
                duration_ms = (time.perf_counter() - trace_config_ctx._request_start_time) * 1000
                logger.debug(
                    f"{params.method} {params.url} -> {params.response.status}",
                    extra={
                        "event": "http_request",
                        "method": params.method,
                        "url": str(params.url),
                        "status": params.response.status,
                        "duration_ms": int(duration_ms),
                    },
                )

        trace.on_request_start.append(on_request_start)
        trace.on_request_end.append(on_request_end)

        return trace

    def start(self):
        if self.session is not None:
            return

        # Per-request timeouts can override these
        timeout = aiohttp.ClientTimeout(
            total=self.total_timeout,
            connect=self.connect_timeout,
        )

        connector = aiohttp.TCPConnector(
            limit=100,
            limit_per_host=30,
            enable_cleanup_closed=True,
        )

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            trace_configs=[self._create_trace_config()],
        )

    async def stop(self):
        if self.session is None:
            return
        await self.session.close()
        self.session = None

    def __call__(self) -> aiohttp.ClientSession:
        assert self.session is not None
        return self.session
