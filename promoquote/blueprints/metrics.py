"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and promotion evaluation
counters. Restrict it to the monitoring network in production.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Multi-process mode when running under Gunicorn with PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=registry if not MULTIPROCESS_MODE else None
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=registry if not MULTIPROCESS_MODE else None,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=registry if not MULTIPROCESS_MODE else None
)

# Promotion Metrics
promotion_evaluations_total = Counter(
    'promotion_evaluations_total',
    'Promotion evaluations by mode (preview/apply) and outcome (ok/degraded/error)',
    ['mode', 'outcome'],
    registry=registry if not MULTIPROCESS_MODE else None
)

promotion_discount_amount_total = Counter(
    'promotion_discount_amount_total',
    'Sum of discount_total over successful evaluations',
    registry=registry if not MULTIPROCESS_MODE else None
)


def record_evaluation(mode, outcome, discount_total=None):
    """Count one promotion evaluation; discount is only added for successful ones."""
    promotion_evaluations_total.labels(mode=mode, outcome=outcome).inc()
    if discount_total is not None and outcome == 'ok':
        promotion_discount_amount_total.inc(float(discount_total))


def setup_metrics_instrumentation(app):
    """
    Setup before_request and after_request hooks for automatic metrics collection.

    Called from the app factory after app creation.
    """

    @app.before_request
    def before_request_metrics():
        """Record request start time and increment in-flight counter."""
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        """Record request metrics after response is ready."""
        try:
            if hasattr(g, '_prometheus_metrics_start_time'):
                duration = time.time() - g._prometheus_metrics_start_time

                # Endpoint name, e.g. 'quotes.preview_transient'
                endpoint = request.endpoint or 'unknown'

                http_request_duration_seconds.labels(
                    method=request.method,
                    endpoint=endpoint
                ).observe(duration)

                http_requests_total.labels(
                    method=request.method,
                    endpoint=endpoint,
                    http_status=response.status_code
                ).inc()

                http_requests_in_flight.dec()
        except Exception as e:
            # Metrics must never break the request
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint (not authenticated).

    Returns:
        Response: Prometheus-formatted metrics in text/plain
    """
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)
