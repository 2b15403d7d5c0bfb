#!/usr/bin/env python3
"""
Tests for the startup check: exit codes, retry budget and the
non-critical integration checks.
"""

import io
import time
import httpx
import pytest
from unittest.mock import patch

from observability.health import CheckStatus
from suites.reporting import Console
from probes.retry import poll_endpoint
from suites.startup import StartupCheck, POSTGRES_EXPORTER_RETRIES
from conftest import (
    PROMETHEUS, LOKI, TEMPO, GRAFANA, ALERTMANAGER, PROMTAIL, RecordingSleep,
    results_by_name, run_suite
)

CORE = ["Prometheus", "Loki", "Tempo", "Grafana", "Alertmanager", "Promtail"]


@pytest.fixture(autouse=True)
def no_port_probe():
    with patch("suites.startup.check_port", return_value=False) as port:
        yield port


@pytest.mark.suite
class TestStartupCheck:

    def test_all_healthy_exits_zero(self, stack_config, fake_stack):
        sleep = RecordingSleep()
        report = run_suite(StartupCheck, stack_config, fake_stack, sleep=sleep)

        assert report.exit_code == 0
        results = results_by_name(report)
        for name in CORE:
            assert results[f"health:{name}"].status == CheckStatus.PASS
            assert results[f"health:{name}"].attempts == 1
        assert sleep.calls == []

    def test_core_services_checked_in_order(self, stack_config, fake_stack):
        report = run_suite(StartupCheck, stack_config, fake_stack)
        health = [r.name for r in report.results if r.name.startswith("health:")]
        assert health == [f"health:{name}" for name in CORE]

    def test_critical_service_down_exits_one(self, stack_config, fake_stack, no_port_probe):
        fake_stack.down.add("tempo")
        sleep = RecordingSleep()

        report = run_suite(StartupCheck, stack_config, fake_stack, sleep=sleep)

        assert report.exit_code == 1
        tempo = results_by_name(report)["health:Tempo"]
        assert tempo.status == CheckStatus.FAIL
        assert tempo.critical
        assert tempo.attempts == stack_config.max_retries
        assert "after 3 attempts (HTTP 000)" in tempo.message
        assert tempo.details["port_open"] is False
        no_port_probe.assert_called_once_with("tempo", 3200, timeout=stack_config.timeout)
        # No sleep after the last attempt
        assert sleep.calls == [stack_config.retry_interval] * (stack_config.max_retries - 1)

    def test_other_services_still_checked_after_failure(self, stack_config, fake_stack):
        fake_stack.down.add("prometheus")

        report = run_suite(StartupCheck, stack_config, fake_stack)

        results = results_by_name(report)
        assert results["health:Prometheus"].status == CheckStatus.FAIL
        assert results["health:Promtail"].status == CheckStatus.PASS

    def test_retry_budget_counts_towards_duration(self, stack_config, fake_stack):
        fake_stack.down.add("tempo")

        report = run_suite(StartupCheck, stack_config, fake_stack,
                           sleep=lambda seconds: time.sleep(0.01))

        tempo = results_by_name(report)["health:Tempo"]
        assert tempo.attempts == 3
        assert tempo.duration_ms >= 20

    def test_error_while_polling_is_recorded(self, stack_config, fake_stack):
        real_poll = poll_endpoint

        def broken_for_tempo(client, endpoint, **kwargs):
            if endpoint.name == "Tempo":
                raise RuntimeError("pattern compile failed")
            return real_poll(client, endpoint, **kwargs)

        with patch("suites.startup.poll_endpoint", side_effect=broken_for_tempo):
            report = run_suite(StartupCheck, stack_config, fake_stack)

        results = results_by_name(report)
        assert report.exit_code == 1
        assert results["health:Tempo"].status == CheckStatus.FAIL
        assert results["health:Tempo"].critical
        assert results["health:Tempo"].error == "pattern compile failed"
        assert results["health:Grafana"].status == CheckStatus.PASS
        assert "integration:tempo_status" in results

    def test_service_recovering_within_budget_passes(self, stack_config, fake_stack):
        attempts = {"count": 0}

        def warming_up(request):
            attempts["count"] += 1
            if attempts["count"] < 3:
                return httpx.Response(503, text="Ingester not ready")
            return httpx.Response(200, text="ready")

        fake_stack.add_handler(f"{LOKI}/ready", warming_up)
        sleep = RecordingSleep()

        report = run_suite(StartupCheck, stack_config, fake_stack, sleep=sleep)

        assert report.exit_code == 0
        assert results_by_name(report)["health:Loki"].attempts == 3
        assert sleep.calls == [0.5, 0.5]

    def test_grafana_pattern_ignores_status(self, stack_config, fake_stack):
        fake_stack.add(f"{GRAFANA}/api/health", {"database": "ok"}, status=503)
        report = run_suite(StartupCheck, stack_config, fake_stack)
        assert results_by_name(report)["health:Grafana"].status == CheckStatus.PASS

    def test_prometheus_requires_exact_200(self, stack_config, fake_stack):
        fake_stack.add(f"{PROMETHEUS}/-/healthy", "Prometheus Server is Healthy.", status=503)
        report = run_suite(StartupCheck, stack_config, fake_stack)
        assert report.exit_code == 1

    def test_integration_failures_do_not_change_exit_code(self, stack_config, fake_stack):
        fake_stack.remove(f"{PROMETHEUS}/api/v1/targets")
        fake_stack.add(f"{GRAFANA}/api/datasources", {"message": "Unauthorized"}, status=401)
        fake_stack.remove(f"{TEMPO}/status")

        report = run_suite(StartupCheck, stack_config, fake_stack)

        results = results_by_name(report)
        assert report.exit_code == 0
        assert results["integration:prometheus_targets"].status == CheckStatus.WARN
        assert results["integration:grafana_datasources"].status == CheckStatus.WARN
        assert results["integration:tempo_status"].status == CheckStatus.WARN

    def test_integration_checks_report_counts(self, stack_config, fake_stack):
        report = run_suite(StartupCheck, stack_config, fake_stack)
        results = results_by_name(report)

        targets = results["integration:prometheus_targets"]
        assert targets.status == CheckStatus.PASS
        assert targets.details == {"targets_up": 6, "targets_total": 6}
        assert results["integration:grafana_datasources"].details["datasources"] == \
            ["Prometheus", "Loki", "Tempo"]

    def test_notifications_warn_when_not_configured(self, stack_config, fake_stack):
        report = run_suite(StartupCheck, stack_config, fake_stack)
        results = results_by_name(report)
        assert results["notification:slack"].status == CheckStatus.WARN
        assert results["notification:pagerduty"].status == CheckStatus.WARN
        assert report.exit_code == 0

    def test_notifications_pass_when_valid(self, stack_config, fake_stack):
        config = stack_config.with_overrides(
            slack_webhook_url="https://hooks.slack.com/services/T0/B0/abc",
            pagerduty_service_key="0123456789abcdef0123456789abcdef"
        )
        report = run_suite(StartupCheck, config, fake_stack)
        results = results_by_name(report)
        assert results["notification:slack"].status == CheckStatus.PASS
        assert results["notification:pagerduty"].status == CheckStatus.PASS

    def test_postgres_exporter_skipped_when_not_configured(self, stack_config, fake_stack):
        report = run_suite(StartupCheck, stack_config, fake_stack)
        assert "health:PostgreSQL Exporter" not in results_by_name(report)

    def test_postgres_exporter_failure_is_non_critical(self, stack_config, fake_stack):
        config = stack_config.with_overrides(postgres_exporter_url="http://postgres-exporter:9187")
        fake_stack.down.add("postgres-exporter")
        sleep = RecordingSleep()

        report = run_suite(StartupCheck, config, fake_stack, sleep=sleep)

        exporter = results_by_name(report)["health:PostgreSQL Exporter"]
        assert exporter.status == CheckStatus.WARN
        assert exporter.attempts == POSTGRES_EXPORTER_RETRIES
        assert report.exit_code == 0
        assert len(sleep.calls) == POSTGRES_EXPORTER_RETRIES - 1

    def test_postgres_exporter_matches_pg_up(self, stack_config, fake_stack):
        config = stack_config.with_overrides(postgres_exporter_url="http://postgres-exporter:9187/")
        fake_stack.add("http://postgres-exporter:9187/metrics", "# HELP pg_up\npg_up 1\n")

        report = run_suite(StartupCheck, config, fake_stack)

        assert results_by_name(report)["health:PostgreSQL Exporter"].status == CheckStatus.PASS

    def test_console_output(self, stack_config, fake_stack):
        fake_stack.down.add("alertmanager")
        stream = io.StringIO()
        client = fake_stack.client()

        StartupCheck(stack_config, client=client, console=Console(stream=stream, color=False),
                     sleep=RecordingSleep()).run()
        client.close()

        output = stream.getvalue()
        assert "Observability Stack Startup Check" in output
        assert "Retry 1/3 - Alertmanager not ready yet (HTTP 000), waiting 0.5s..." in output
        assert "[✗ FAIL] Alertmanager is not available after 3 attempts (HTTP 000)" in output
        assert "STARTUP CHECK FAILED" in output
        assert "\033[" not in output

    def test_promtail_url(self, stack_config):
        suite = StartupCheck(stack_config)
        endpoints = suite.core_endpoints()
        suite.client.close()
        promtail = [e for e in endpoints if e.name == "Promtail"][0]
        assert promtail.url == f"{PROMTAIL}/ready"
        assert promtail.expected_pattern == "ready"
        assert [e.url for e in endpoints if e.name == "Alertmanager"] == [f"{ALERTMANAGER}/-/healthy"]
