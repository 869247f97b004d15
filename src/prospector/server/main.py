import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from prospector.main.config import get_settings
from prospector.main.logging import get_logger
from prospector.server.exception_handlers import add_exception_handlers
from prospector.server.lifespan import lifespan
from prospector.workflows.workflow_router import router as workflow_router

logger = get_logger(__name__)


def get_application() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Prospector", version=settings.app_version, lifespan=lifespan)

    app.include_router(workflow_router, prefix=settings.api_prefix, tags=["workflows"])

    # Add handlers of all errors except 500
    add_exception_handlers(app)

    @app.get("/healthz")
    async def get_healthz(request: Request):
        container = getattr(request.app.state, "container", None)
        producer_ready = container is not None and container.producer().is_ready()

        content = {
            "status": "HEALTHY" if producer_ready else "UNHEALTHY",
            "job_backend": settings.job_backend,
            "producer_ready": producer_ready,
        }
        if container is not None and settings.job_backend == "pubsub":
            content["consumer"] = await container.consumer().get_stats()

        return JSONResponse(status_code=200 if producer_ready else 503, content=content)

    return app


app = get_application()


def start():
    uvicorn.run(
        "prospector.server.main:app",
        host="0.0.0.0",
        port=8123,
        reload=True,
        reload_dirs="./src/",
    )
