"""
Per-request correlation for the HTTP surface.

Every request gets an x-request-id (echoed back, or generated) bound to the
logging context, and one request.complete event that names the caller and,
for obligation routes, the obligation touched.
"""

import re
import time
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from habitledger.core.logging import latency_bucket_ms, log_event, request_id_ctx_var

_OBLIGATION_PATH = re.compile(r"^/v1/(?:tasks|challenges|obligations)/(?P<obligation_id>[^/]+)")


def obligation_from_path(path: str) -> Optional[str]:
    match = _OBLIGATION_PATH.match(path)
    return match.group("obligation_id") if match else None


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = "x-request-id", user_header: str = "x-user-id"):
        super().__init__(app)
        self.header_name = header_name
        self.user_header = user_header

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            status = response.status_code
            log_event(
                "warning" if status >= 500 else "info",
                "request.complete",
                request_id=rid,
                user_id=request.headers.get(self.user_header),
                obligation_id=obligation_from_path(request.url.path),
                event_type="request.complete",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - started) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
