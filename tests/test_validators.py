#!/usr/bin/env python3
"""
Tests for offline validators: notification settings, bundle files and
local tooling probes.
"""

import json
import socket
import subprocess
import pytest
from unittest.mock import Mock, patch

from probes.validators import (
    validate_slack_webhook, validate_pagerduty_key, validate_dashboard_file,
    validate_prometheus_labels, check_rule_syntax, check_port, running_compose_services,
    VALID, INVALID, NOT_CONFIGURED, SLACK_PLACEHOLDER, PAGERDUTY_PLACEHOLDER
)


@pytest.mark.unit
class TestNotificationSettings:

    @pytest.mark.parametrize("value", ["", None, SLACK_PLACEHOLDER])
    def test_slack_not_configured(self, value):
        assert validate_slack_webhook(value).state == NOT_CONFIGURED

    def test_slack_valid(self):
        result = validate_slack_webhook("https://hooks.slack.com/services/T000/B000/XXXX")
        assert result.valid

    def test_slack_invalid(self):
        assert validate_slack_webhook("https://example.com/hook").state == INVALID

    @pytest.mark.parametrize("value", ["", None, PAGERDUTY_PLACEHOLDER])
    def test_pagerduty_not_configured(self, value):
        assert validate_pagerduty_key(value).state == NOT_CONFIGURED

    def test_pagerduty_valid(self):
        assert validate_pagerduty_key("a" * 16 + "B1" * 8).state == VALID

    def test_pagerduty_wrong_length(self):
        result = validate_pagerduty_key("abc123")
        assert result.state == INVALID
        assert "32 alphanumeric" in result.message


@pytest.mark.unit
class TestBundleFiles:

    def test_dashboard_counts_nested_panels(self, bundle_dir):
        result = validate_dashboard_file(bundle_dir / "grafana" / "dashboards" / "service_health.json")
        assert result.exists
        assert result.valid_json
        assert result.panel_count == 3

    def test_dashboard_missing(self, tmp_path):
        result = validate_dashboard_file(tmp_path / "missing.json")
        assert not result.exists
        assert result.valid_json is None

    def test_dashboard_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        result = validate_dashboard_file(path)

        assert result.exists
        assert result.valid_json is False
        assert result.error

    def test_dashboard_without_panels(self, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps({"title": "Empty"}))
        assert validate_dashboard_file(path).panel_count == 0

    def test_prometheus_labels(self, bundle_dir):
        result = validate_prometheus_labels(bundle_dir / "prometheus" / "prom.yml",
                                            ["service", "service_type", "team"])
        assert result.exists
        assert result.labels == {"service": True, "service_type": True, "team": False}

    def test_label_prefix_does_not_match(self, tmp_path):
        path = tmp_path / "prom.yml"
        path.write_text("labels:\n  service_type: logging\n")

        result = validate_prometheus_labels(path, ["service", "service_type"])

        assert result.labels == {"service": False, "service_type": True}


@pytest.mark.unit
class TestLocalTooling:

    def test_rule_syntax_without_promtool(self, tmp_path):
        with patch("probes.validators.shutil.which", return_value=None):
            result = check_rule_syntax(tmp_path / "alerts.yml")
        assert not result.available

    def test_rule_syntax_failure_output(self, tmp_path):
        completed = Mock(returncode=1, stdout="FAILED: bad expression\n")
        with patch("probes.validators.shutil.which", return_value="/usr/bin/promtool"), \
                patch("probes.validators.subprocess.run", return_value=completed) as run:
            result = check_rule_syntax(tmp_path / "alerts.yml", timeout=7)

        assert result.available
        assert result.valid is False
        assert "bad expression" in result.output
        assert run.call_args.args[0][:3] == ["/usr/bin/promtool", "check", "rules"]
        assert run.call_args.kwargs["timeout"] == 7

    def test_rule_syntax_timeout(self, tmp_path):
        with patch("probes.validators.shutil.which", return_value="/usr/bin/promtool"), \
                patch("probes.validators.subprocess.run",
                      side_effect=subprocess.TimeoutExpired("promtool", 1)):
            result = check_rule_syntax(tmp_path / "alerts.yml", timeout=1)
        assert result.valid is False
        assert "timed out" in result.output

    def test_check_port_open_and_closed(self):
        server = socket.socket()
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        port = server.getsockname()[1]
        try:
            assert check_port("127.0.0.1", port, timeout=1)
        finally:
            server.close()

        with patch("probes.validators.socket.create_connection", side_effect=ConnectionRefusedError):
            assert not check_port("127.0.0.1", port, timeout=1)

    def test_running_compose_services(self):
        output = (
            "NAME          IMAGE          STATUS\n"
            "stack-loki-1       grafana/loki   Up 2 minutes\n"
            "stack-promtail-1   grafana/promtail   Exited (1)\n"
        )
        completed = Mock(returncode=0, stdout=output)
        with patch("probes.validators.shutil.which", return_value="/usr/bin/docker"), \
                patch("probes.validators.subprocess.run", return_value=completed):
            status = running_compose_services(["loki", "promtail", "grafana"])

        assert status == {"loki": True, "promtail": False, "grafana": False}

    def test_running_compose_services_without_docker(self):
        with patch("probes.validators.shutil.which", return_value=None):
            assert running_compose_services(["loki"]) == {"loki": False}
