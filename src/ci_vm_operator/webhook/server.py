"""HTTPS server for the VirtualMachine admission webhook."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound, UnsupportedMediaType
from werkzeug.routing import Map, Rule
from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

from .. import logging as structured_logging
from ..config import ConfigurationError, load_webhook_configuration
from ..health import health_response
from ..metrics import MetricsSink, NullMetrics, PrometheusMetrics
from ..tracing import initialize_tracing, trace_span
from .review import (
    AdmissionDecision,
    AdmissionRequest,
    ReviewError,
    build_review_response,
    mutate,
    parse_review,
    validate,
)

logger = logging.getLogger(__name__)

Decider = Callable[[AdmissionRequest], AdmissionDecision]

_DEFAULT_API_VERSION = "admission.k8s.io/v1"


class AdmissionApp:
    """WSGI application serving ``/validate`` and ``/mutate``.

    ``/healthz``, ``/readyz`` and ``/metrics`` are served alongside.
    """

    def __init__(self, metrics: MetricsSink | None = None) -> None:
        self.metrics = metrics if metrics is not None else NullMetrics()
        self.url_map = Map(
            [
                Rule("/validate", endpoint="validate", methods=["POST"]),
                Rule("/mutate", endpoint="mutate", methods=["POST"]),
                Rule("/healthz", endpoint="healthz", methods=["GET"]),
                Rule("/readyz", endpoint="readyz", methods=["GET"]),
            ]
        )
        self.deciders: dict[str, Decider] = {"validate": validate, "mutate": mutate}
        self.metrics_app = make_wsgi_app()

    def dispatch(self, request: Request) -> Response:
        adapter = self.url_map.bind_to_environ(request.environ)
        try:
            endpoint, _ = adapter.match()
        except (NotFound, MethodNotAllowed) as e:
            return e.get_response(request.environ)  # type: ignore[return-value]

        if endpoint in ("healthz", "readyz"):
            return health_response(endpoint, ready=True)
        return self.review(endpoint, request)

    def review(self, endpoint: str, request: Request) -> Response:
        """Decide on one AdmissionReview."""
        logger.info("Handling admission review for VirtualMachine")
        if request.mimetype != "application/json":
            logger.error(f"contentType={request.content_type}, expect application/json")
            return UnsupportedMediaType().get_response(request.environ)  # type: ignore[return-value]

        try:
            api_version, admission_request = parse_review(request.get_data())
        except ReviewError as e:
            logger.error(f"Failed to decode admission request body: {e}")
            decision = AdmissionDecision.deny(str(e), code=400)
            self.metrics.admission_decision(endpoint, decision.allowed)
            return _json_response(build_review_response(_DEFAULT_API_VERSION, "", decision))

        with trace_span(f"admission.{endpoint}", attributes={"admission.uid": admission_request.uid}):
            decision = self.deciders[endpoint](admission_request)
        self.metrics.admission_decision(endpoint, decision.allowed)
        return _json_response(build_review_response(api_version, admission_request.uid, decision))

    def __call__(self, environ: dict[str, Any], start_response: Any) -> Any:
        if environ.get("PATH_INFO", "") == "/metrics":
            return self.metrics_app(environ, start_response)
        request = Request(environ)
        try:
            response = self.dispatch(request)
        except HTTPException as e:
            response = e.get_response(environ)
        return response(environ, start_response)


def _json_response(payload: dict[str, Any]) -> Response:
    return Response(json.dumps(payload), mimetype="application/json", status=200)


def main() -> None:
    """Run the admission webhook until interrupted."""
    structured_logging.setup_structured_logging()
    try:
        config = load_webhook_configuration()
    except ConfigurationError as e:
        logger.error(f"Invalid admission webhook configuration: {e}")
        sys.exit(1)

    structured_logging.setup_structured_logging(config.log_level)
    initialize_tracing("ci-vm-admission")
    logger.info("Starting VirtualMachines admission controller")

    app = AdmissionApp(metrics=PrometheusMetrics())
    server = make_server(
        "",
        config.port,
        app,
        threaded=True,
        ssl_context=(config.cert_file, config.key_file),
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Admission controller stopped")
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
