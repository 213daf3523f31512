from prometheus_client import Counter, Histogram, Gauge
from fastapi import Request
from fastapi.routing import APIRoute
import time
import logging

logger = logging.getLogger(__name__)

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'Number of HTTP requests in progress',
    ['method', 'endpoint']
)

# ============================================================================
# Weekly Plan Lifecycle Metrics
# ============================================================================

weekly_plan_operations_total = Counter(
    'weekly_plan_operations_total',
    'Weekly plan operations',
    ['operation', 'outcome']  # assign_menus/publish/unpublish/...; success, warning
)

expiration_sweeps_total = Counter(
    'expiration_sweeps_total',
    'Expiration sweeps per user',
    ['status']  # success, failed
)

expired_documents_total = Counter(
    'expired_documents_total',
    'Documents retired by the expiration sweeper',
    ['kind']  # weekly_plan, single_day_order, template_week
)

notifications_total = Counter(
    'notifications_total',
    'Live client notifications',
    ['status']  # sent, failed
)


# ============================================================================
# Middleware Class
# ============================================================================

class PrometheusMiddleware:
    """
    FastAPI middleware to collect Prometheus metrics
    """

    async def __call__(self, request: Request, call_next):
        # Use the route template (/orders/{order_id}) as label, not the raw path
        route = request.url.path
        for route_obj in request.app.routes:
            if isinstance(route_obj, APIRoute):
                if route_obj.path_regex.match(route):
                    route = route_obj.path
                    break

        method = request.method
        http_requests_in_progress.labels(method=method, endpoint=route).inc()
        start_time = time.time()

        try:
            response = await call_next(request)

            http_requests_total.labels(
                method=method,
                endpoint=route,
                status_code=response.status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method,
                endpoint=route
            ).observe(time.time() - start_time)

            return response

        except Exception as e:
            http_requests_total.labels(
                method=method,
                endpoint=route,
                status_code=500
            ).inc()
            logger.error(f"Request failed: {str(e)}")
            raise

        finally:
            http_requests_in_progress.labels(method=method, endpoint=route).dec()


# ============================================================================
# Helper Functions for Application Metrics
# ============================================================================

def track_plan_operation(operation: str, outcome: str):
    """Track weekly plan store / publication operations"""
    weekly_plan_operations_total.labels(operation=operation, outcome=outcome).inc()


def track_sweep(success: bool):
    """Track one user's expiration sweep"""
    expiration_sweeps_total.labels(status="success" if success else "failed").inc()


def track_expired(kind: str, count: int = 1):
    """Track documents retired by the sweeper"""
    if count:
        expired_documents_total.labels(kind=kind).inc(count)


def track_notification(sent: bool):
    """Track live notification pushes"""
    notifications_total.labels(status="sent" if sent else "failed").inc()
