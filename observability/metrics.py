"""
Prometheus metrics for Stack Probes.

Records the outcome of every check and HTTP probe so that probe runs can be
scraped, written to a node-exporter textfile or pushed to a Pushgateway.
"""

import time
from typing import Optional
from prometheus_client import (
    Counter, Histogram, Gauge, CollectorRegistry, generate_latest,
    CONTENT_TYPE_LATEST, push_to_gateway, write_to_textfile,
    ProcessCollector, PlatformCollector, GCCollector
)

# Global metrics registry
metrics_registry = CollectorRegistry()


class ProbeMetrics:
    """Metrics describing probe runs against the observability stack."""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or metrics_registry
        self._setup_metrics()

    def _setup_metrics(self):
        self.check_results_total = Counter(
            'stackprobe_check_results_total',
            'Check results by suite, check and status',
            ['suite', 'check', 'status'],
            registry=self.registry
        )

        self.check_duration = Histogram(
            'stackprobe_check_duration_seconds',
            'Duration of a single check including retries',
            ['suite', 'check'],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, float('inf')),
            registry=self.registry
        )

        self.retry_attempts_total = Counter(
            'stackprobe_retry_attempts_total',
            'Health poll attempts that had to be retried',
            ['service'],
            registry=self.registry
        )

        self.http_probes_total = Counter(
            'stackprobe_http_probes_total',
            'Outbound HTTP probes by service and status code',
            ['service', 'status_code'],
            registry=self.registry
        )

        self.http_probe_duration = Histogram(
            'stackprobe_http_probe_duration_seconds',
            'Outbound HTTP probe duration',
            ['service'],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float('inf')),
            registry=self.registry
        )

        self.suite_runs_total = Counter(
            'stackprobe_suite_runs_total',
            'Suite runs by result',
            ['suite', 'result'],
            registry=self.registry
        )

        self.suite_last_success = Gauge(
            'stackprobe_suite_last_run_success',
            '1 when the last run of the suite exited 0, else 0',
            ['suite'],
            registry=self.registry
        )

        self.suite_last_run_timestamp = Gauge(
            'stackprobe_suite_last_run_timestamp_seconds',
            'Unix time of the last suite run',
            ['suite'],
            registry=self.registry
        )

        self.suite_checks = Gauge(
            'stackprobe_suite_checks',
            'Check counts of the last suite run by status',
            ['suite', 'status'],
            registry=self.registry
        )

    def record_check(self, suite: str, check: str, status: str, duration: float):
        self.check_results_total.labels(suite=suite, check=check, status=status).inc()
        self.check_duration.labels(suite=suite, check=check).observe(duration)

    def record_retry(self, service: str):
        self.retry_attempts_total.labels(service=service).inc()

    def record_http_probe(self, service: str, status_code: int, duration: float):
        """Record an outbound HTTP probe; status 0 means no response."""
        self.http_probes_total.labels(
            service=service,
            status_code=f"{status_code:03d}"
        ).inc()
        self.http_probe_duration.labels(service=service).observe(duration)

    def record_suite_run(self, suite: str, exit_code: int, counts: dict,
                         finished_at: Optional[float] = None):
        """Record the outcome of a complete suite run."""
        result = "success" if exit_code == 0 else "failure"
        self.suite_runs_total.labels(suite=suite, result=result).inc()
        self.suite_last_success.labels(suite=suite).set(1 if exit_code == 0 else 0)
        self.suite_last_run_timestamp.labels(suite=suite).set(finished_at or time.time())
        for status, count in counts.items():
            self.suite_checks.labels(suite=suite, status=status).set(count)


class ApiMetrics:
    """HTTP server metrics for the instrumented example API.

    A fresh registry also carries the process, platform and GC collectors
    that the default registry would expose.
    """

    def __init__(self, registry: CollectorRegistry = None):
        if registry is None:
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
            GCCollector(registry=registry)
        self.registry = registry

        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'path', 'status'],
            registry=self.registry
        )

        self.http_request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'path', 'status'],
            buckets=(0.1, 0.5, 1.0, 1.5, float('inf')),
            registry=self.registry
        )

        self.http_requests_in_progress = Gauge(
            'http_requests_in_progress',
            'HTTP requests currently being served',
            registry=self.registry
        )

    def record_request(self, method: str, path: str, status_code: int, duration: float):
        self.http_requests_total.labels(method=method, path=path, status=str(status_code)).inc()
        self.http_request_duration.labels(
            method=method, path=path, status=str(status_code)
        ).observe(duration)


# Global metrics instance
probe_metrics = ProbeMetrics()


def get_metrics_handler(registry: CollectorRegistry = None):
    """Get handler returning the Prometheus exposition payload and headers."""
    if registry is None:
        registry = metrics_registry

    def metrics_handler():
        return generate_latest(registry), {"Content-Type": CONTENT_TYPE_LATEST}

    return metrics_handler


def export_textfile(path: str, registry: CollectorRegistry = None):
    """Write metrics for the node-exporter textfile collector."""
    write_to_textfile(path, registry or metrics_registry)


def push_metrics(gateway: str, job: str = "stack_probes", registry: CollectorRegistry = None,
                 grouping_key: Optional[dict] = None):
    """Push the run metrics to a Prometheus Pushgateway."""
    push_to_gateway(gateway, job=job, registry=registry or metrics_registry,
                    grouping_key=grouping_key or {})
