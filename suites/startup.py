# suites/startup.py
"""
Startup check for the observability stack.

Validates every third-party service connection before the stack is
declared ready. Core services are critical: if any of them stays
unavailable for the whole retry budget the run exits non-zero and the
build stops. Integration and notification checks only warn.
"""

from typing import List
from urllib.parse import urlparse

from probes.retry import HealthEndpoint, poll_endpoint
from probes.services import PrometheusAPI, GrafanaAPI, TempoAPI, count_target_health, datasource_names
from probes.validators import (
    validate_slack_webhook, validate_pagerduty_key, check_port, VALID, NOT_CONFIGURED
)
from .base import CheckSuite, check

POSTGRES_EXPORTER_RETRIES = 5


class StartupCheck(CheckSuite):
    """Sequential health polling of the core services plus integration checks."""

    name = "startup"
    title = "Observability Stack Startup Check"
    summary_title = "Startup Check Summary"
    success_text = "STARTUP CHECK PASSED\nAll critical services are healthy and connected."
    failure_text = ("STARTUP CHECK FAILED\nOne or more critical services are not available.\n"
                    "Please check the logs above for details.")

    def core_endpoints(self) -> List[HealthEndpoint]:
        c = self.config
        return [
            HealthEndpoint("Prometheus", f"{c.prometheus_url}/-/healthy"),
            HealthEndpoint("Loki", f"{c.loki_url}/ready", "ready"),
            HealthEndpoint("Tempo", f"{c.tempo_url}/ready", "ready"),
            HealthEndpoint("Grafana", f"{c.grafana_url}/api/health", "ok"),
            HealthEndpoint("Alertmanager", f"{c.alertmanager_url}/-/healthy"),
            HealthEndpoint("Promtail", f"{c.promtail_url}/ready", "ready"),
        ]

    def execute(self):
        self.section("Core Observability Services (Critical)")
        for endpoint in self.core_endpoints():
            self.check_service_health(endpoint)

        self.section("Service Integration Checks")
        self.check_prometheus_targets()
        self.check_grafana_datasources()
        self.check_tempo_status()

        self.section("External Notification Services (Optional)")
        self.check_slack_webhook()
        self.check_pagerduty()

        if self.config.postgres_exporter_url:
            self.section("Infrastructure Services (Optional)")
            self.check_service_health(HealthEndpoint(
                "PostgreSQL Exporter",
                f"{self.config.postgres_exporter_url.rstrip('/')}/metrics",
                "pg_up",
                critical=False,
                max_retries=POSTGRES_EXPORTER_RETRIES
            ))

    @check(lambda endpoint: f"health:{endpoint.name}", critical=lambda endpoint: endpoint.critical)
    def check_service_health(self, endpoint: HealthEndpoint):
        """Poll one health endpoint within the retry budget."""
        self.console.info(f"Checking {endpoint.name} at {endpoint.url}...")

        def announce_retry(attempt, budget, response):
            self.console.info(
                f"Retry {attempt}/{budget} - {endpoint.name} not ready yet "
                f"(HTTP {response.http_code}), waiting {self.config.retry_interval:g}s..."
            )

        outcome = poll_endpoint(
            self.client, endpoint,
            max_retries=self.config.max_retries,
            retry_interval=self.config.retry_interval,
            sleep=self.sleep,
            on_retry=announce_retry
        )
        name = f"health:{endpoint.name}"
        details = {"url": endpoint.url, "http_code": outcome.http_code}

        if outcome.healthy:
            return self.passed(name, endpoint.success_message(),
                               attempts=outcome.attempts, details=details)

        response = outcome.last_response
        error = response.error if response is not None else None
        if endpoint.critical:
            details["port_open"] = self._port_open(endpoint.url)
            return self.failed(
                name,
                f"{endpoint.name} is not available after {outcome.attempts} attempts "
                f"(HTTP {outcome.http_code})",
                attempts=outcome.attempts, details=details, error=error
            )
        return self.warned(
            name, f"{endpoint.name} is not available (non-critical)",
            attempts=outcome.attempts, details=details, error=error
        )

    def _port_open(self, url: str) -> bool:
        parsed = urlparse(url)
        if not parsed.hostname:
            return False
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return check_port(parsed.hostname, port, timeout=self.config.timeout)

    @check("integration:prometheus_targets", critical=False)
    def check_prometheus_targets(self):
        self.console.info("Checking Prometheus scrape targets...")
        response = PrometheusAPI(self.client, self.config.prometheus_url).targets()
        name = "integration:prometheus_targets"

        if not response.text:
            return self.warned(name, "Could not fetch Prometheus targets", error=response.error)
        if not response.json_status_success:
            return self.warned(name, "Prometheus targets query failed",
                               details={"http_code": response.http_code})

        up, total = count_target_health(response.json)
        details = {"targets_up": up, "targets_total": total}
        if up > 0:
            return self.passed(name, f"Prometheus has {up}/{total} targets up",
                               critical=False, details=details)
        return self.warned(name, "Prometheus has no active targets yet", details=details)

    @check("integration:grafana_datasources", critical=False)
    def check_grafana_datasources(self):
        self.console.info("Checking Grafana datasources...")
        grafana = GrafanaAPI(self.client, self.config.grafana_url, auth=self.config.grafana_auth)
        response = grafana.datasources()
        name = "integration:grafana_datasources"

        if not response.text:
            return self.warned(name, "Could not fetch Grafana datasources", error=response.error)

        names = datasource_names(response.json)
        if names:
            return self.passed(name, f"Grafana has {len(names)} datasources configured",
                               critical=False, details={"datasources": names})
        return self.warned(name, "No Grafana datasources found",
                           details={"http_code": response.http_code})

    @check("integration:tempo_status", critical=False)
    def check_tempo_status(self):
        self.console.info("Checking Tempo status endpoint...")
        response = TempoAPI(self.client, self.config.tempo_url).status()
        name = "integration:tempo_status"
        if response.ok:
            return self.passed(name, "Tempo status endpoint is reachable", critical=False)
        return self.warned(name, f"Tempo status endpoint not available (HTTP {response.http_code})",
                           error=response.error)

    @check("notification:slack", critical=False)
    def check_slack_webhook(self):
        validation = validate_slack_webhook(self.config.slack_webhook_url)
        if validation.state != NOT_CONFIGURED:
            self.console.info("Validating Slack webhook configuration...")
        if validation.state == VALID:
            return self.passed("notification:slack", validation.message, critical=False)
        return self.warned("notification:slack", validation.message,
                           details={"state": validation.state})

    @check("notification:pagerduty", critical=False)
    def check_pagerduty(self):
        validation = validate_pagerduty_key(self.config.pagerduty_service_key)
        if validation.state != NOT_CONFIGURED:
            self.console.info("Validating PagerDuty configuration...")
        if validation.state == VALID:
            return self.passed("notification:pagerduty", validation.message, critical=False)
        return self.warned("notification:pagerduty", validation.message,
                           details={"state": validation.state})
