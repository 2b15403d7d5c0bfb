# suites/service_health.py
"""
Service health validation.

Checks that Prometheus scrapes every stack component, that the service
health recording rules are loaded and producing series, and that the
Service Health dashboard and scrape labels ship with the bundle.
"""

from probes.services import PrometheusAPI, job_health, query_results, rule_group_names
from probes.validators import validate_dashboard_file, validate_prometheus_labels
from .base import CheckSuite, check

SCRAPE_JOBS = [
    "prometheus",
    "postgres-exporter",
    "grafana",
    "loki",
    "tempo",
    "alertmanager",
]

RECORDING_RULE_METRICS = [
    ("service_up", "Individual service health status"),
    ("service_availability_5m", "5-minute availability percentage"),
    ("service_availability_1h", "1-hour availability percentage"),
    ("service_availability_24h", "24-hour availability percentage"),
    ("service_availability_7d", "7-day availability percentage"),
    ("service_availability_30d", "30-day availability percentage"),
    ("service_healthy_count", "Count of healthy services"),
    ("service_unhealthy_count", "Count of unhealthy services"),
    ("service_total_count", "Total service count"),
    ("service_health_percentage", "Overall service health percentage"),
    ("service_sla_compliance", "SLA compliance indicator"),
    ("service_type_health", "Service type health aggregation"),
]

SERVICE_HEALTH_RULE_GROUP = "service_health.rules"
DASHBOARD_PATH = ("grafana", "dashboards", "service_health.json")
PROMETHEUS_CONFIG_PATH = ("prometheus", "prom.yml")
SERVICE_LABELS = [
    ("service", "Service labels"),
    ("service_type", "Service type labels"),
]


class ServiceHealthSuite(CheckSuite):
    name = "service-health"
    title = "Service Health Check Validation"

    def execute(self):
        self.prometheus = PrometheusAPI(self.client, self.config.prometheus_url)

        self.section("Checking Prometheus Accessibility")
        self.check_prometheus_health()

        self.section("Checking Prometheus Scrape Targets")
        targets = self.prometheus.targets()
        for job in SCRAPE_JOBS:
            self.check_scrape_target(job, targets)

        self.section("Checking Service Health Recording Rules")
        for metric, description in RECORDING_RULE_METRICS:
            self.check_recording_metric(metric, description)

        self.section("Checking Prometheus Recording Rules")
        self.check_rule_group_loaded()

        self.section("Checking Grafana Dashboard")
        self.check_dashboard()

        self.section("Checking Prometheus Service Labels")
        self.check_service_labels()

    @check("prometheus:healthy")
    def check_prometheus_health(self):
        response = self.prometheus.healthy()
        if response.ok:
            return self.passed("prometheus:healthy", f"Prometheus is healthy (HTTP {response.http_code})")
        return self.failed("prometheus:healthy",
                           f"Prometheus is unhealthy (HTTP {response.http_code}, expected 200)",
                           error=response.error)

    @check(lambda job, targets=None: f"target:{job}")
    def check_scrape_target(self, job: str, targets=None):
        """Check one scrape job is configured and up."""
        name = f"target:{job}"
        response = targets if targets is not None else self.prometheus.targets()
        state = job_health(response.json, job)

        if state == "up":
            return self.passed(name, f"Prometheus target '{job}' is up")
        if state == "down":
            return self.failed(name, f"Prometheus target '{job}' is down")
        return self.failed(name, f"Prometheus target '{job}' not found in config",
                           error=response.error)

    @check(lambda metric, description: f"metric:{metric}")
    def check_recording_metric(self, metric: str, description: str):
        name = f"metric:{metric}"
        response = self.prometheus.query(metric)
        series = query_results(response.json) if response.json_status_success else []

        if series:
            return self.passed(name, f"Metric '{metric}' exists ({description})",
                               details={"series": len(series)})
        return self.failed(name, f"Metric '{metric}' not found ({description})",
                           error=response.error)

    @check("rules:service_health")
    def check_rule_group_loaded(self):
        response = self.prometheus.rules()
        groups = rule_group_names(response.json)
        if SERVICE_HEALTH_RULE_GROUP in groups or response.matches(SERVICE_HEALTH_RULE_GROUP):
            return self.passed("rules:service_health", "Service health recording rules are loaded")
        return self.failed("rules:service_health", "Service health recording rules are NOT loaded",
                           details={"groups": groups})

    @check("dashboard")
    def check_dashboard(self):
        validation = validate_dashboard_file(self.config.bundle_path(*DASHBOARD_PATH))
        details = {"path": str(validation.path)}

        if not validation.exists:
            return self.failed("dashboard:exists", "Service Health dashboard file does NOT exist",
                               details=details)
        self.add(self.passed("dashboard:exists", "Service Health dashboard file exists",
                             details=details))

        if not validation.valid_json:
            return self.failed("dashboard:json", "Service Health dashboard JSON is invalid",
                               error=validation.error, details=details)
        self.add(self.passed("dashboard:json", "Service Health dashboard JSON is valid"))

        if validation.panel_count > 0:
            return self.passed(
                "dashboard:panels",
                f"Service Health dashboard has {validation.panel_count} panels",
                details={"panels": validation.panel_count}
            )
        return self.failed("dashboard:panels", "Service Health dashboard has no panels")

    @check("prometheus_config")
    def check_service_labels(self):
        validation = validate_prometheus_labels(
            self.config.bundle_path(*PROMETHEUS_CONFIG_PATH),
            [label for label, _ in SERVICE_LABELS]
        )
        if not validation.exists:
            return self.failed("prometheus_config:exists", "Prometheus config file does NOT exist",
                               details={"path": str(validation.path)})
        self.add(self.passed("prometheus_config:exists", "Prometheus config file exists"))

        if validation.error:
            return self.failed("prometheus_config:readable", "Prometheus config file is unreadable",
                               error=validation.error, details={"path": str(validation.path)})

        for label, description in SERVICE_LABELS:
            name = f"prometheus_config:{label}"
            if validation.labels.get(label):
                self.add(self.passed(name, f"{description} are configured in Prometheus"))
            else:
                self.add(self.failed(name, f"{description} are NOT configured in Prometheus"))
