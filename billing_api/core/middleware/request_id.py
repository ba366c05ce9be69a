"""
Per-request log context.

Assigns the request id (taken from `x-request-id` or generated), binds the
account or user reference found in `/api/accounts/{ref}/...` and
`/api/users/{ref}/...` paths, and logs one `request.complete` line.
"""
import logging
import re
import time
from typing import Dict, Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from billing_api.core.logging import LOGGER_NAME, bind_log_context, reset_log_context

OWNER_PATH = re.compile(r"^/api/(?P<kind>accounts|users)/(?P<reference>[^/]+)")

logger = logging.getLogger(LOGGER_NAME)


def owner_from_path(path: str) -> Dict[str, Optional[str]]:
    match = OWNER_PATH.match(path)
    if match is None:
        return {}
    field = "account_reference" if match.group("kind") == "accounts" else "user_reference"
    return {field: match.group("reference")}


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        owner = owner_from_path(request.url.path)
        tokens = bind_log_context(request_id=rid, **owner)

        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            logger.info(
                "request.complete",
                extra={
                    "request_id": rid,
                    **owner,
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 1),
                },
            )
        finally:
            reset_log_context(tokens)
        return response
