# suites/logs.py
"""
Log aggregation pipeline test.

Generates traffic against the example API, waits for Promtail to ship the
resulting log lines, then asks Loki for them. Only two things are fatal:
a required container that is not running, and no log streams at all from
the example API. Everything else is reported and the run goes on.
"""

from probes.retry import HealthEndpoint
from probes.services import (
    LokiAPI, GrafanaAPI, stream_count, stream_labels, loki_rule_groups, dashboard_titles,
    query_results
)
from probes.validators import running_compose_services
from .base import CheckSuite, check

REQUIRED_SERVICES = ["loki", "promtail", "grafana", "example_api", "alertmanager"]

APP_SELECTOR = '{app="example_api"}'
ERROR_QUERY = APP_SELECTOR + '|json|level="error"'
TRACE_QUERY = APP_SELECTOR + '|json|trace_id!=""'

TRAFFIC = [
    ("Generating normal request logs...", "/hello", {"name": "TestUser"}),
    ("Generating slow request logs...", "/slow", {"delay": 500}),
    ("Generating error logs...", "/error", None),
]
TRAFFIC_PAUSE_SECONDS = 1


def readiness_name(endpoint: HealthEndpoint) -> str:
    return endpoint.name.lower().replace(" ", "_")


class LogAggregationSuite(CheckSuite):
    name = "logs"
    title = "Log Aggregation Pipeline Test"
    summary_title = "Test Results Summary"
    success_text = "✓ Log aggregation pipeline is operational"
    failure_text = "✗ Log aggregation pipeline is NOT operational"

    def __init__(self, *args, check_containers: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.check_containers = check_containers

    def readiness_endpoints(self):
        c = self.config
        return [
            HealthEndpoint("Loki", f"{c.loki_url}/ready", "ready", critical=False),
            HealthEndpoint("Promtail", f"{c.promtail_url}/ready", "ready", critical=False),
            HealthEndpoint("Grafana", f"{c.grafana_url}/api/health", "ok", critical=False),
            HealthEndpoint("Alertmanager", f"{c.alertmanager_url}/-/ready", "Alertmanager is Ready",
                           critical=False),
            HealthEndpoint("Example API", f"{c.example_api_url}/hello", "Hello", critical=False),
        ]

    def execute(self):
        self.loki = LokiAPI(self.client, self.config.loki_url)
        self.grafana = GrafanaAPI(self.client, self.config.grafana_url, auth=self.config.grafana_auth)

        if self.check_containers:
            self.section("1. Checking if services are running")
            self.check_services_running()

        self.section("2. Checking service health endpoints")
        for endpoint in self.readiness_endpoints():
            self.check_ready(endpoint)

        self.section("3. Generating test logs")
        self.generate_test_logs()

        self.section(f"4. Waiting for logs to be ingested ({self.config.log_ingest_wait:g} seconds)")
        self.sleep(self.config.log_ingest_wait)

        self.section("5. Querying Loki for logs")
        self.streams = None
        self.check_log_streams()
        self.check_error_logs()

        self.section("6. Verifying log labels")
        self.check_log_labels(self.streams)

        self.section("7. Checking for trace correlation")
        self.check_trace_correlation()

        self.section("8. Checking Loki alerting rules")
        self.check_loki_rules()

        self.section("9. Checking Grafana dashboards")
        self.check_grafana_dashboards()

    def hints(self, report):
        if report.exit_code != 0:
            last = report.results[-1] if report.results else None
            if report.aborted and last is not None and last.name.startswith("container:"):
                return ["Please start services with: docker compose up -d"]
            return []
        api = self.config.example_api_url
        loki = self.config.loki_url
        return [
            "",
            "Next steps:",
            f"1. Open Grafana at {self.config.grafana_url}",
            "2. Navigate to Dashboards → Logs Overview",
            "3. Explore logs using LogQL queries",
            "4. Check Trace to Logs Correlation dashboard",
            "",
            "Useful commands:",
            f"  - Generate more logs: curl {api}/hello",
            f"  - Generate errors: curl {api}/error",
            f"  - View Promtail targets: curl {self.config.promtail_url}/targets",
            f"  - Query Loki: curl '{loki}/loki/api/v1/query?query={APP_SELECTOR}'",
        ]

    @check("containers")
    def check_services_running(self):
        status = running_compose_services(REQUIRED_SERVICES, timeout=self.config.test_timeout)
        for service in REQUIRED_SERVICES:
            name = f"container:{service}"
            if status.get(service):
                self.add(self.passed(name, f"{service} is running"))
            else:
                self.abort(self.failed(name, f"{service} is not running"))

    @check(lambda endpoint: f"ready:{readiness_name(endpoint)}", critical=False)
    def check_ready(self, endpoint: HealthEndpoint):
        name = f"ready:{readiness_name(endpoint)}"
        label = f"{endpoint.name} ({endpoint.url})"
        response = self.client.get(endpoint.url, service=readiness_name(endpoint))
        if endpoint.is_healthy(response):
            return self.passed(name, f"{label}: Ready", critical=False)
        return self.failed(name, f"{label}: Not ready", critical=False,
                           details={"http_code": response.http_code}, error=response.error)

    @check("traffic", critical=False)
    def generate_test_logs(self):
        base = self.config.example_api_url.rstrip("/")
        responses = []
        for label, path, params in TRAFFIC:
            self.console.info(label)
            responses.append(self.client.get(base + path, params=params, service="example_api"))
            self.sleep(TRAFFIC_PAUSE_SECONDS)

        reached = len([r for r in responses if r.reachable])
        if reached == len(TRAFFIC):
            return self.passed("traffic", "Test logs generated", critical=False)
        return self.warned(
            "traffic", f"Only {reached}/{len(TRAFFIC)} test requests reached the example API"
        )

    @check("loki:streams")
    def check_log_streams(self):
        response = self.loki.query(APP_SELECTOR)
        count = stream_count(response.json)
        if count > 0:
            self.streams = response.json
            return self.passed("loki:streams", f"Found {count} log streams from example_api",
                               details={"streams": count})

        self.console.detail(f"Response: {response.text or response.error}")
        self.abort(self.failed("loki:streams", "No logs found from example_api",
                               error=response.error))

    @check("loki:error_logs", critical=False)
    def check_error_logs(self):
        response = self.loki.query(ERROR_QUERY)
        if stream_count(response.json) > 0:
            return self.passed("loki:error_logs", "Found error logs from example_api", critical=False)
        return self.warned("loki:error_logs",
                           "No error logs found (this might be okay if no errors occurred)")

    @check("loki:labels", critical=False)
    def check_log_labels(self, streams):
        labels = stream_labels(streams)
        if labels:
            self.console.write("Found labels:")
            for label in labels:
                self.console.detail(f"- {label}")
            return self.passed("loki:labels", "Log labels are present", critical=False,
                               details={"labels": labels})
        return self.warned("loki:labels", "Could not verify labels")

    @check("loki:trace_correlation", critical=False)
    def check_trace_correlation(self):
        response = self.loki.query_range(TRACE_QUERY, limit=1)
        if query_results(response.json):
            return self.passed("loki:trace_correlation", "Logs contain trace_id for correlation",
                               critical=False)
        return self.warned("loki:trace_correlation", "No trace_id found in logs")

    @check("loki:rules", critical=False)
    def check_loki_rules(self):
        groups = loki_rule_groups(self.loki.rules().json)
        if groups:
            self.console.write("Rule groups:")
            for group in groups:
                self.console.detail(f"- {group}")
            return self.passed("loki:rules", f"Found {len(groups)} rule groups", critical=False,
                               details={"groups": groups})
        return self.failed("loki:rules", "No alerting rules found", critical=False)

    @check("grafana:dashboards", critical=False)
    def check_grafana_dashboards(self):
        response = self.grafana.search_dashboards()
        titles = dashboard_titles(response.json)
        if not titles:
            return self.warned("grafana:dashboards",
                               "Could not fetch dashboard list (authentication may be required)",
                               details={"http_code": response.http_code})

        log_dashboards = [t for t in titles if "Log" in t or "log" in t]
        if log_dashboards:
            self.console.write("Log-related dashboards:")
            for title in log_dashboards:
                self.console.detail(f"- {title}")
        return self.passed("grafana:dashboards", f"Found {len(titles)} dashboards", critical=False,
                           details={"dashboards": titles, "log_dashboards": log_dashboards})
