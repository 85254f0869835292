from starlette.middleware.base import BaseHTTPMiddleware

from arvi.core.metrics import http_requests_total, normalize_path


def route_template(request) -> str:
    """Matched route path (/v1/habits/series/{series_id}); raw path, collapsed, when nothing matched."""
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or normalize_path(request.url.path)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count every request by method, route template and status."""

    async def dispatch(self, request, call_next):
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            http_requests_total.inc(labels={
                "method": request.method.upper(),
                "path": route_template(request),
                "status": str(status),
            })
