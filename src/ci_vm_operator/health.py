"""Health check endpoints for the operator."""

from __future__ import annotations

from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.wrappers import Response


def health_response(endpoint: str, ready: bool = True) -> Response:
    """Build the response for a ``healthz`` or ``readyz`` probe.

    Liveness always succeeds while the process serves requests. Readiness
    reflects ``ready``.
    """
    if endpoint == "healthz":
        return Response('{"status":"ok"}', mimetype="application/json", status=200)
    if ready:
        return Response('{"status":"ready"}', mimetype="application/json", status=200)
    return Response('{"status":"not ready"}', mimetype="application/json", status=503)


def create_combined_wsgi_app(ready_check: Callable[[], bool] | None = None) -> Any:
    """Create a WSGI app that combines metrics and health check endpoints.

    Args:
        ready_check: Returns whether the operator is ready, e.g. once the
            controller has synced its initial listing

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        """WSGI app that routes /healthz and /readyz, delegates /metrics to prometheus."""
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            return health_response("healthz")(environ, start_response)
        elif path == "/readyz":
            ready = ready_check() if ready_check is not None else True
            return health_response("readyz", ready)(environ, start_response)
        else:
            # Delegate all other paths (including /metrics) to prometheus app
            return metrics_app(environ, start_response)

    return combined_app
