# suites/alerts.py
"""
Alert configuration tests.

Checks that Prometheus has loaded the expected alert rules, reports the
current alert states, and that Alertmanager is up and configured. The
Alertmanager checks only warn: alert routing may legitimately be disabled
in a development stack.
"""

from probes.services import (
    PrometheusAPI, AlertmanagerAPI, alertmanager_status_ok, alert_state_counts,
    rule_group_names, rule_names
)
from probes.validators import check_rule_syntax
from .base import CheckSuite, check

DB_HA_ALERTS = ["ReplicaNotStreaming", "ReplicaLagHigh", "ExporterDown"]
POSTGRES_ALERTS = ["PostgreSQLDown", "PostgreSQLTooManyConnections"]
ALERT_RULES_PATH = ("prometheus", "rules", "alerts.yml")


class AlertConfigurationSuite(CheckSuite):
    name = "alerts"
    title = "Testing Alert Configuration"
    success_text = "All alert tests passed!"

    def execute(self):
        self.prometheus = PrometheusAPI(self.client, self.config.prometheus_url)
        self.alertmanager = AlertmanagerAPI(self.client, self.config.alertmanager_url)
        self.console.write("Starting alert tests...")

        self.test_prometheus_rules()
        self.test_db_ha_alert_rules()
        self.test_postgres_alert_rules()
        self.test_alert_states()
        self.test_alertmanager_health()
        self.test_alertmanager_config()
        self.test_rule_syntax()

    def failure_message(self, report):
        return f"{len(report.critical_failures)} test(s) failed"

    def _loaded_rule_names(self):
        response = self.prometheus.rules()
        return set(rule_names(response.json)), response

    def _required_rules(self, name: str, label: str, required):
        names, response = self._loaded_rule_names()
        # Body search covers rule payloads that do not parse.
        presence = {rule: rule in names or response.matches(rule) for rule in required}
        if all(presence.values()):
            return self.passed(name, label)

        for rule, present in presence.items():
            self.console.detail(f"{rule}: {'✓' if present else '✗'}")
        return self.failed(name, f"{label} ({label} not found)",
                           details={"rules": presence})

    @check("prometheus_rules")
    def test_prometheus_rules(self):
        response = self.prometheus.rules()
        if response.json_status_success:
            groups = rule_group_names(response.json)
            return self.passed("prometheus_rules",
                               f"Prometheus rules loaded ({len(groups)} rule groups loaded)",
                               details={"groups": groups})
        return self.failed("prometheus_rules", "Prometheus rules loaded (Could not load rules)",
                           error=response.error)

    @check("db_ha_alert_rules")
    def test_db_ha_alert_rules(self):
        return self._required_rules("db_ha_alert_rules", "DB-HA alert rules", DB_HA_ALERTS)

    @check("postgres_alert_rules")
    def test_postgres_alert_rules(self):
        return self._required_rules("postgres_alert_rules", "PostgreSQL alert rules", POSTGRES_ALERTS)

    @check("alert_states")
    def test_alert_states(self):
        response = self.prometheus.alerts()
        if not response.json_status_success:
            return self.failed("alert_states", "Alert states (Could not retrieve alert states)",
                               error=response.error)

        counts = alert_state_counts(response.json)
        self.add(self.passed(
            "alert_states",
            f"Alert states (Firing: {counts['firing']}, Pending: {counts['pending']}, "
            f"Inactive: {counts['inactive']})",
            details=counts
        ))
        if counts["firing"] > 0:
            self.add(self.warned("alerts_firing",
                                 f"{counts['firing']} alert(s) currently firing",
                                 details={"firing": counts["firing"]}))

    @check("alertmanager_health", critical=False)
    def test_alertmanager_health(self):
        response = self.alertmanager.healthy()
        if response.ok:
            return self.passed("alertmanager_health", "Alertmanager health", critical=False)
        return self.warned("alertmanager_health",
                           f"Alertmanager health (Alertmanager not available - HTTP {response.http_code})",
                           error=response.error)

    @check("alertmanager_config", critical=False)
    def test_alertmanager_config(self):
        response = self.alertmanager.status()
        if alertmanager_status_ok(response):
            return self.passed("alertmanager_config", "Alertmanager configuration", critical=False)
        return self.warned("alertmanager_config",
                           "Alertmanager configuration (Alertmanager configuration not available)")

    @check("rule_syntax")
    def test_rule_syntax(self):
        path = self.config.bundle_path(*ALERT_RULES_PATH)
        syntax = check_rule_syntax(path, timeout=self.config.test_timeout)
        if not syntax.available:
            return self.skipped("rule_syntax", "Alert rule syntax (promtool not available)")
        if syntax.valid:
            return self.passed("rule_syntax", "Alert rule syntax")

        for line in syntax.output.splitlines():
            self.console.detail(line)
        return self.failed("rule_syntax", "Alert rule syntax (Alert rule syntax errors)",
                           details={"path": str(path), "output": syntax.output})
