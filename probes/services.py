# probes/services.py
"""
Wrappers over the HTTP APIs of the operated services.

Nothing here interprets metrics, logs or alerts beyond what a check needs:
each method is one GET, and the module-level helpers pull counts and names
out of the JSON envelopes the services return.
"""

from typing import Any, Dict, List, Optional, Tuple

from .client import ProbeClient, ProbeResponse


def _join(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + path


class ServiceAPI:
    """Base for a single third-party service reachable over HTTP."""

    service = "unknown"

    def __init__(self, client: ProbeClient, base_url: str,
                 auth: Optional[Tuple[str, str]] = None):
        self.client = client
        self.base_url = base_url
        self.auth = auth

    def url(self, path: str) -> str:
        return _join(self.base_url, path)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None,
            auth: Optional[Tuple[str, str]] = None) -> ProbeResponse:
        return self.client.get(self.url(path), params=params,
                               auth=auth or self.auth, service=self.service)


class PrometheusAPI(ServiceAPI):
    service = "prometheus"

    def healthy(self) -> ProbeResponse:
        return self.get("/-/healthy")

    def targets(self) -> ProbeResponse:
        return self.get("/api/v1/targets")

    def query(self, expr: str) -> ProbeResponse:
        return self.get("/api/v1/query", params={"query": expr})

    def rules(self) -> ProbeResponse:
        return self.get("/api/v1/rules")

    def alerts(self) -> ProbeResponse:
        return self.get("/api/v1/alerts")


class GrafanaAPI(ServiceAPI):
    service = "grafana"

    def health(self) -> ProbeResponse:
        return self.get("/api/health")

    def datasources(self) -> ProbeResponse:
        return self.get("/api/datasources")

    def search_dashboards(self) -> ProbeResponse:
        return self.get("/api/search", params={"type": "dash-db"})


class LokiAPI(ServiceAPI):
    service = "loki"

    def ready(self) -> ProbeResponse:
        return self.get("/ready")

    def query(self, logql: str, limit: Optional[int] = None) -> ProbeResponse:
        params = {"query": logql}
        if limit is not None:
            params["limit"] = limit
        return self.get("/loki/api/v1/query", params=params)

    def query_range(self, logql: str, limit: Optional[int] = None) -> ProbeResponse:
        params = {"query": logql}
        if limit is not None:
            params["limit"] = limit
        return self.get("/loki/api/v1/query_range", params=params)

    def rules(self) -> ProbeResponse:
        """Rule groups as JSON; the ruler API only speaks YAML on its native path."""
        response = self.get("/loki/api/v1/rules")
        if response.json is not None:
            return response
        return self.get("/prometheus/api/v1/rules")


class AlertmanagerAPI(ServiceAPI):
    service = "alertmanager"

    def healthy(self) -> ProbeResponse:
        return self.get("/-/healthy")

    def ready(self) -> ProbeResponse:
        return self.get("/-/ready")

    def status(self) -> ProbeResponse:
        """Status from the v2 API, falling back to the removed v1 API."""
        response = self.get("/api/v2/status")
        if response.ok and isinstance(response.json, dict):
            return response
        return self.get("/api/v1/status")


class TempoAPI(ServiceAPI):
    service = "tempo"

    def ready(self) -> ProbeResponse:
        return self.get("/ready")

    def status(self) -> ProbeResponse:
        return self.get("/status")


def alertmanager_status_ok(response: ProbeResponse) -> bool:
    """v1 answers with a success envelope, v2 with the config object."""
    if response.json_status_success:
        return True
    payload = response.json
    return response.ok and isinstance(payload, dict) and "config" in payload


# Prometheus payload helpers

def _active_targets(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or {}
    targets = data.get("activeTargets") if isinstance(data, dict) else None
    return [t for t in targets or [] if isinstance(t, dict)]


def count_target_health(payload: Any) -> Tuple[int, int]:
    """Return (targets up, targets total) from /api/v1/targets."""
    targets = _active_targets(payload)
    up = len([t for t in targets if t.get("health") == "up"])
    return up, len(targets)


def job_health(payload: Any, job: str) -> str:
    """Return 'up', 'down' or 'missing' for a scrape job.

    A job with several targets counts as up when any of them is up.
    """
    found = False
    for target in _active_targets(payload):
        labels = target.get("labels") or {}
        discovered = target.get("discoveredLabels") or {}
        if labels.get("job") == job or target.get("scrapePool") == job or discovered.get("job") == job:
            found = True
            if target.get("health") == "up":
                return "up"
    return "down" if found else "missing"


def _rule_groups(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or {}
    groups = data.get("groups") if isinstance(data, dict) else None
    return [g for g in groups or [] if isinstance(g, dict)]


def rule_group_names(payload: Any) -> List[str]:
    return [g.get("name") for g in _rule_groups(payload) if g.get("name")]


def rule_names(payload: Any) -> List[str]:
    """All alerting and recording rule names across groups."""
    names = []
    for group in _rule_groups(payload):
        for rule in group.get("rules") or []:
            if isinstance(rule, dict) and rule.get("name"):
                names.append(rule["name"])
    return names


def alert_state_counts(payload: Any) -> Dict[str, int]:
    """Count alerts per state from /api/v1/alerts."""
    counts = {"firing": 0, "pending": 0, "inactive": 0}
    if not isinstance(payload, dict):
        return counts
    data = payload.get("data") or {}
    alerts = data.get("alerts") if isinstance(data, dict) else None
    for alert in alerts or []:
        state = alert.get("state") if isinstance(alert, dict) else None
        if state in counts:
            counts[state] += 1
    return counts


def query_results(payload: Any) -> List[Any]:
    """The ``data.result`` list of a Prometheus or Loki query."""
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or {}
    result = data.get("result") if isinstance(data, dict) else None
    return result if isinstance(result, list) else []


# Loki payload helpers

def stream_count(payload: Any) -> int:
    return len(query_results(payload))


def stream_labels(payload: Any) -> List[str]:
    """Label keys of the first stream in a Loki query result."""
    results = query_results(payload)
    if not results or not isinstance(results[0], dict):
        return []
    stream = results[0].get("stream") or results[0].get("metric") or {}
    return list(stream.keys()) if isinstance(stream, dict) else []


def loki_rule_groups(payload: Any) -> List[str]:
    """Rule group names from Loki's Prometheus-compatible rules envelope."""
    return rule_group_names(payload)


def datasource_names(payload: Any) -> List[str]:
    if not isinstance(payload, list):
        return []
    return [d.get("name") for d in payload if isinstance(d, dict) and d.get("name")]


def dashboard_titles(payload: Any) -> List[str]:
    if not isinstance(payload, list):
        return []
    return [d.get("title") for d in payload if isinstance(d, dict) and d.get("title")]
