import logging
import time

from fastapi import Request

from progress_service.core.context import set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

async def request_context_middleware(request: Request, call_next):
    """Binds the request id to the log context and echoes it back."""
    req_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
    started = time.perf_counter()

    response = await call_next(request)

    response.headers[REQUEST_ID_HEADER] = req_id
    logger.debug(
        "%s %s -> %s",
        request.method,
        request.url.path,
        response.status_code,
        extra={"duration_ms": round((time.perf_counter() - started) * 1000, 2)},
    )
    return response
