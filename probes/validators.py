# probes/validators.py
"""
Offline validation of notification settings and bundle artifacts.

None of these talk to a running service: webhook and key checks only look
at the configured value, and file checks read the dashboards and config
fragments shipped in the bundle.
"""

import json
import re
import shutil
import socket
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

SLACK_PLACEHOLDER = "https://hooks.slack.com/services/YOUR/WEBHOOK/URL"
SLACK_WEBHOOK_RE = re.compile(r"^https://hooks\.slack\.com/services/")

PAGERDUTY_PLACEHOLDER = "your-pagerduty-key"
PAGERDUTY_KEY_RE = re.compile(r"^[a-zA-Z0-9]{32}$")

VALID = "valid"
INVALID = "invalid"
NOT_CONFIGURED = "not_configured"


@dataclass
class Validation:
    """Outcome of an offline validation."""
    state: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return self.state == VALID


def validate_slack_webhook(webhook_url: Optional[str]) -> Validation:
    """Check the webhook URL shape; no message is ever sent."""
    if not webhook_url or webhook_url == SLACK_PLACEHOLDER:
        return Validation(NOT_CONFIGURED, "Slack webhook not configured (using placeholder or empty)")

    if SLACK_WEBHOOK_RE.match(webhook_url):
        return Validation(VALID, "Slack webhook URL format is valid")
    return Validation(INVALID, "Slack webhook URL format appears invalid")


def validate_pagerduty_key(service_key: Optional[str]) -> Validation:
    """PagerDuty integration keys are 32 alphanumeric characters."""
    if not service_key or service_key == PAGERDUTY_PLACEHOLDER:
        return Validation(NOT_CONFIGURED, "PagerDuty service key not configured (using placeholder or empty)")

    if PAGERDUTY_KEY_RE.match(service_key):
        return Validation(VALID, "PagerDuty service key format is valid")
    return Validation(
        INVALID,
        "PagerDuty service key format may be invalid (expected 32 alphanumeric characters)"
    )


@dataclass
class DashboardValidation:
    path: Path
    exists: bool
    valid_json: Optional[bool] = None
    panel_count: int = 0
    error: Optional[str] = None


def validate_dashboard_file(path: Path) -> DashboardValidation:
    """Check a Grafana dashboard definition exists, parses and has panels."""
    path = Path(path)
    if not path.is_file():
        return DashboardValidation(path=path, exists=False)

    try:
        with open(path, encoding="utf-8") as f:
            dashboard = json.load(f)
    except (OSError, ValueError) as e:
        return DashboardValidation(path=path, exists=True, valid_json=False, error=str(e))

    panels = dashboard.get("panels") if isinstance(dashboard, dict) else None
    # Rows in older dashboards nest their panels.
    count = 0
    for panel in panels or []:
        count += 1
        if isinstance(panel, dict):
            count += len(panel.get("panels") or [])
    return DashboardValidation(path=path, exists=True, valid_json=True, panel_count=count)


@dataclass
class LabelValidation:
    path: Path
    exists: bool
    labels: Dict[str, bool] = field(default_factory=dict)
    error: Optional[str] = None


def validate_prometheus_labels(path: Path, labels: Sequence[str]) -> LabelValidation:
    """Check that label keys appear in a Prometheus scrape config."""
    path = Path(path)
    if not path.is_file():
        return LabelValidation(path=path, exists=False)

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return LabelValidation(path=path, exists=True, error=str(e))

    found = {}
    for label in labels:
        key = label.rstrip(":")
        found[key] = re.search(rf"(^|\s){re.escape(key)}:", text, re.MULTILINE) is not None
    return LabelValidation(path=path, exists=True, labels=found)


@dataclass
class RuleSyntaxCheck:
    available: bool
    valid: Optional[bool] = None
    output: str = ""


def check_rule_syntax(path: Path, promtool: str = "promtool", timeout: float = 30) -> RuleSyntaxCheck:
    """Run ``promtool check rules`` when promtool is installed."""
    executable = shutil.which(promtool)
    if executable is None:
        return RuleSyntaxCheck(available=False)

    try:
        completed = subprocess.run(
            [executable, "check", "rules", str(path)],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired:
        return RuleSyntaxCheck(available=True, valid=False,
                               output=f"promtool timed out after {timeout}s")

    return RuleSyntaxCheck(available=True, valid=completed.returncode == 0,
                           output=completed.stdout or "")


def check_port(host: str, port: int, timeout: float = 5.0) -> bool:
    """TCP connect test, the equivalent of ``nc -z``."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def running_compose_services(services: Sequence[str], timeout: float = 30) -> Dict[str, bool]:
    """Report which compose services are up according to ``docker compose ps``."""
    output = ""
    for command in (["docker", "compose", "ps"], ["docker-compose", "ps"]):
        if shutil.which(command[0]) is None:
            continue
        try:
            completed = subprocess.run(command, stdout=subprocess.PIPE,
                                       stderr=subprocess.DEVNULL, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired):
            continue
        if completed.returncode == 0:
            output = completed.stdout
            break

    lines: List[str] = output.splitlines()
    status = {}
    for service in services:
        pattern = re.compile(rf"{re.escape(service)}.*\b(Up|running)\b")
        status[service] = any(pattern.search(line) for line in lines)
    return status
