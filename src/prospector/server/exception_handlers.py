from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from prospector.main.exceptions import EXCEPTION_MAP
from prospector.main.logging import get_logger
from prospector.main.models import GeneralError

logger = get_logger(__name__)


def add_exception_handlers(app: FastAPI):
    for exception, (status_code, error_message, error_code) in EXCEPTION_MAP.items():

        def handler(
            request: Request,
            exc,
            status_code=status_code,
            error_message=error_message,
            error_code=error_code,
        ):
            message = error_message or str(exc)

            if status_code >= 500:
                logger.warning(
                    f"{request.method} {request.url.path} failed: {exc}",
                    extra={
                        "method": request.method,
                        "path": request.url.path,
                        "error_code": int(error_code),
                    },
                )

            return JSONResponse(
                status_code=status_code,
                content=GeneralError(
                    message=message, prospector_error_code=error_code
                ).model_dump(),
            )

        app.add_exception_handler(exception, handler)
