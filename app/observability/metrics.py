"""
Metrics Collection with Prometheus.

Exposes request, query and object storage metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class DashboardMetrics:
    """
    Centralized metrics for the billing dashboard.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Read-model query batches (rate, duration, failures)
    - Presigned URL issuance (success/failure)
    - Admin sign-ins and gate redirects
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "dashboard_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "dashboard_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "dashboard_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "dashboard_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Database Metrics
        # ====================================================================
        self.db_queries_total = Counter(
            "dashboard_db_queries_total",
            "Total read queries executed in batches",
            [MetricLabels.OPERATION, "success"],
        )

        self.db_query_duration_seconds = Histogram(
            "dashboard_db_query_duration_seconds",
            "Read query duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.db_batch_duration_seconds = Histogram(
            "dashboard_db_batch_duration_seconds",
            "Wall-clock duration of a parallel query batch",
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        # ====================================================================
        # Object Storage Metrics
        # ====================================================================
        self.presigned_urls_total = Counter(
            "dashboard_presigned_urls_total",
            "Presigned URL issuance attempts",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Auth Metrics
        # ====================================================================
        self.sign_ins_total = Counter(
            "dashboard_sign_ins_total",
            "Admin sign-in attempts",
            [MetricLabels.OUTCOME],
        )

        self.gate_redirects_total = Counter(
            "dashboard_gate_redirects_total",
            "Redirects issued by the session gate",
            ["reason"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "dashboard_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_db_query(self, operation: str, success: bool, duration: float) -> None:
        """Record database query metrics."""
        self.db_queries_total.labels(operation=operation, success=str(success)).inc()
        self.db_query_duration_seconds.labels(operation=operation).observe(duration)

    def record_presign(self, success: bool) -> None:
        self.presigned_urls_total.labels(outcome="success" if success else "failure").inc()

    def record_sign_in(self, outcome: str) -> None:
        self.sign_ins_total.labels(outcome=outcome).inc()

    def record_gate_redirect(self, reason: str) -> None:
        self.gate_redirects_total.labels(reason=reason).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = DashboardMetrics()
