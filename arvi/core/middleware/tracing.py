from starlette.middleware.base import BaseHTTPMiddleware

from arvi.core.middleware.metrics import route_template
from arvi.core.tracing import start_span


class TracingMiddleware(BaseHTTPMiddleware):
    """Root span per request; pipeline passes and commits nest under it."""

    async def dispatch(self, request, call_next):
        attributes = {
            "http.method": request.method,
            "http.target": request.url.path,
            "request_id": getattr(request.state, "request_id", None),
        }
        with start_span("http.request", attributes) as span:
            response = await call_next(request)
            if span is not None:
                span.set_attribute("http.route", route_template(request))
                span.set_attribute("http.status_code", response.status_code)
            return response
