# suites/metrics.py
"""
Metrics collection tests: Prometheus is healthy, scraping, and the
PostgreSQL exporter series and database recording rules are queryable.
"""

from probes.services import PrometheusAPI, count_target_health, job_health
from .base import CheckSuite, check

POSTGRES_METRICS = [
    "pg_up",
    "pg_stat_database_numbackends",
    "pg_settings_max_connections",
]

REPLICATION_METRIC = "pg_stat_replication_write_lag"

DB_RECORDING_RULES = [
    "db_total_tps",
    "db_cache_hit_ratio",
    "db_active_connections",
]


class MetricsCollectionSuite(CheckSuite):
    name = "metrics"
    title = "Testing Metrics Collection"
    success_text = "All metrics tests passed!"

    def execute(self):
        self.prometheus = PrometheusAPI(self.client, self.config.prometheus_url)
        self.console.write("Starting metrics tests...")

        self.test_prometheus_health()
        self.test_prometheus_targets()
        self.test_postgres_exporter_target()
        self.test_postgres_metrics()
        self.test_replication_metrics()
        self.test_recording_rules()

    def failure_message(self, report):
        return f"{len(report.critical_failures)} test(s) failed"

    @check("prometheus_health")
    def test_prometheus_health(self):
        response = self.prometheus.healthy()
        if response.ok:
            return self.passed("prometheus_health", "Prometheus health")
        return self.failed("prometheus_health", f"Prometheus health (HTTP {response.http_code})",
                           error=response.error)

    @check("prometheus_targets")
    def test_prometheus_targets(self):
        response = self.prometheus.targets()
        up, total = count_target_health(response.json)
        if up > 0:
            return self.passed("prometheus_targets", f"Prometheus targets ({up} active targets)",
                               details={"up": up, "total": total})
        return self.failed("prometheus_targets", "Prometheus targets (No active targets)",
                           error=response.error)

    @check("postgres_exporter_target")
    def test_postgres_exporter_target(self):
        response = self.prometheus.targets()
        if job_health(response.json, "postgres-exporter") == "up":
            return self.passed("postgres_exporter_target", "postgres-exporter target")
        return self.failed("postgres_exporter_target",
                           "postgres-exporter target (postgres-exporter not up)")

    def _unavailable(self, expressions):
        return [expr for expr in expressions
                if not self.prometheus.query(expr).json_status_success]

    @check("postgres_metrics")
    def test_postgres_metrics(self):
        missing = self._unavailable(POSTGRES_METRICS)
        if not missing:
            return self.passed("postgres_metrics", "PostgreSQL metrics availability")
        return self.failed(
            "postgres_metrics",
            "PostgreSQL metrics availability (Metric " + ", ".join(missing) + " not available)",
            details={"missing": missing}
        )

    @check("replication_metrics", critical=False)
    def test_replication_metrics(self):
        if not self._unavailable([REPLICATION_METRIC]):
            return self.passed("replication_metrics", "Replication metrics", critical=False)
        return self.warned(
            "replication_metrics",
            "Replication metrics (Replication metrics not available - "
            "may be expected if no replica configured)"
        )

    @check("recording_rules")
    def test_recording_rules(self):
        missing = self._unavailable(DB_RECORDING_RULES)
        if not missing:
            return self.passed("recording_rules", "Recording rules")
        return self.failed(
            "recording_rules",
            "Recording rules (Recording rule " + ", ".join(missing) + " not available)",
            details={"missing": missing}
        )
