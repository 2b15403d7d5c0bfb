#!/usr/bin/env python3
"""
pytest configuration for Stack Probes tests.

The observability stack is faked with an httpx MockTransport: every suite
talks to the same in-memory set of routes, which individual tests tweak to
simulate down or misconfigured services. Nothing here needs Docker or a
network connection.
"""

import os
import sys
import json
import pytest
import httpx
from typing import Any, Callable, Dict, List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from probes.client import ProbeClient
from suites.config import StackConfig, IN_CLUSTER_URLS
from suites.service_health import SCRAPE_JOBS, SERVICE_HEALTH_RULE_GROUP, RECORDING_RULE_METRICS
from suites.alerts import DB_HA_ALERTS, POSTGRES_ALERTS

PROMETHEUS = IN_CLUSTER_URLS["prometheus_url"]
GRAFANA = IN_CLUSTER_URLS["grafana_url"]
LOKI = IN_CLUSTER_URLS["loki_url"]
TEMPO = IN_CLUSTER_URLS["tempo_url"]
ALERTMANAGER = IN_CLUSTER_URLS["alertmanager_url"]
PROMTAIL = IN_CLUSTER_URLS["promtail_url"]
EXAMPLE_API = "http://example-api:9091"


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "suite: end-to-end suite runs against the fake stack")


class FakeStack:
    """In-memory stand-in for every HTTP service of the stack.

    Routes are keyed by ``scheme://host:port/path``; the value is either a
    ``(status, body)`` tuple or a callable taking the httpx request. Hosts
    in ``down`` refuse connections.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.down = set()
        self.requests: List[httpx.Request] = []
        self.queries: Dict[str, Any] = {}

    @staticmethod
    def key(request: httpx.Request) -> str:
        url = request.url
        return f"{url.scheme}://{url.host}:{url.port}{url.path}"

    def add(self, url: str, body: Any = "", status: int = 200):
        """Serve ``body`` at ``url``; dicts and lists are sent as JSON."""
        self.routes[url] = (status, body)

    def add_handler(self, url: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.routes[url] = handler

    def remove(self, url: str):
        self.routes.pop(url, None)

    def hits(self, url: str) -> int:
        return len([r for r in self.requests if self.key(r) == url])

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        route = self.routes.get(self.key(request))
        if route is None:
            return httpx.Response(404, text="404 page not found")
        if callable(route):
            return route(request)

        status, body = route
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    def client(self, timeout: float = 1.0) -> ProbeClient:
        return ProbeClient(timeout=timeout, transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    """Drop-in for time.sleep that only records the requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float):
        self.calls.append(seconds)


def prometheus_success(data: Any) -> Dict[str, Any]:
    return {"status": "success", "data": data}


def vector(*metrics: Dict[str, str]) -> Dict[str, Any]:
    return prometheus_success({
        "resultType": "vector",
        "result": [{"metric": m, "value": [1700000000, "1"]} for m in metrics],
    })


def active_targets(jobs, health: str = "up") -> Dict[str, Any]:
    return prometheus_success({
        "activeTargets": [
            {"labels": {"job": job, "instance": f"{job}:9100"}, "scrapePool": job, "health": health}
            for job in jobs
        ],
        "droppedTargets": [],
    })


def rule_groups(groups: Dict[str, List[str]]) -> Dict[str, Any]:
    return prometheus_success({
        "groups": [
            {"name": name, "file": "/etc/prometheus/rules.yml",
             "rules": [{"name": rule, "type": "alerting"} for rule in rules]}
            for name, rules in groups.items()
        ]
    })


def loki_streams(*streams: Dict[str, str]) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": {
            "resultType": "streams",
            "result": [{"stream": s, "values": [["1700000000000000000", "{}"]]} for s in streams],
        },
    }


def build_healthy_stack() -> FakeStack:
    stack = FakeStack()

    # Prometheus
    stack.add(f"{PROMETHEUS}/-/healthy", "Prometheus Server is Healthy.\n")
    stack.add(f"{PROMETHEUS}/api/v1/targets", active_targets(SCRAPE_JOBS))
    stack.add(f"{PROMETHEUS}/api/v1/rules", rule_groups({
        SERVICE_HEALTH_RULE_GROUP: [metric for metric, _ in RECORDING_RULE_METRICS],
        "db_ha": DB_HA_ALERTS,
        "postgres": POSTGRES_ALERTS,
    }))
    stack.add(f"{PROMETHEUS}/api/v1/alerts", prometheus_success({"alerts": [
        {"labels": {"alertname": "ReplicaLagHigh"}, "state": "inactive"},
        {"labels": {"alertname": "ExporterDown"}, "state": "pending"},
    ]}))

    def prometheus_query(request):
        expr = request.url.params.get("query")
        if expr in stack.queries:
            return httpx.Response(200, json=stack.queries[expr])
        return httpx.Response(200, json=vector({"__name__": expr, "job": "postgres-exporter"}))

    stack.add_handler(f"{PROMETHEUS}/api/v1/query", prometheus_query)

    # Loki
    stack.add(f"{LOKI}/ready", "ready\n")
    stack.add(f"{LOKI}/loki/api/v1/query",
              loki_streams({"app": "example_api", "environment": "development", "level": "info"}))
    stack.add(f"{LOKI}/loki/api/v1/query_range",
              loki_streams({"app": "example_api", "trace_id": "4bf92f3577b34da6a3ce929d0e0e4736"}))
    stack.add(f"{LOKI}/loki/api/v1/rules",
              {"status": "success", "data": {"groups": [{"name": "example_api_errors", "rules": []}]}})

    # Tempo, Promtail
    stack.add(f"{TEMPO}/ready", "ready\n")
    stack.add(f"{TEMPO}/status", "version: 2.3.0\n")
    stack.add(f"{PROMTAIL}/ready", "ready\n")

    # Grafana
    stack.add(f"{GRAFANA}/api/health", {"commit": "abc", "database": "ok", "version": "10.2.0"})
    stack.add(f"{GRAFANA}/api/datasources", [
        {"id": 1, "name": "Prometheus", "type": "prometheus"},
        {"id": 2, "name": "Loki", "type": "loki"},
        {"id": 3, "name": "Tempo", "type": "tempo"},
    ])
    stack.add(f"{GRAFANA}/api/search", [
        {"uid": "svc", "title": "Service Health", "type": "dash-db"},
        {"uid": "logs", "title": "Logs Overview", "type": "dash-db"},
    ])

    # Alertmanager
    stack.add(f"{ALERTMANAGER}/-/healthy", "OK")
    stack.add(f"{ALERTMANAGER}/-/ready", "Alertmanager is Ready.")
    stack.add(f"{ALERTMANAGER}/api/v2/status",
              {"cluster": {"status": "ready"}, "config": {"original": "route: {}"}})

    # Example API
    stack.add(f"{EXAMPLE_API}/hello", {"message": "Hello, TestUser!"})
    stack.add(f"{EXAMPLE_API}/slow", {"message": "Slow response", "delay": 500})
    stack.add(f"{EXAMPLE_API}/error", {"error": "Internal server error"}, status=500)

    return stack


@pytest.fixture
def fake_stack():
    """A fully healthy observability stack."""
    return build_healthy_stack()


@pytest.fixture
def probe_client(fake_stack):
    client = fake_stack.client()
    yield client
    client.close()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def bundle_dir(tmp_path):
    """A configuration bundle with a valid dashboard and scrape config."""
    dashboards = tmp_path / "grafana" / "dashboards"
    dashboards.mkdir(parents=True)
    (dashboards / "service_health.json").write_text(json.dumps({
        "title": "Service Health",
        "panels": [
            {"id": 1, "type": "stat", "title": "Healthy services"},
            {"id": 2, "type": "row", "title": "Availability", "panels": [
                {"id": 3, "type": "timeseries", "title": "Availability 5m"},
            ]},
        ],
    }))

    prometheus = tmp_path / "prometheus"
    prometheus.mkdir()
    (prometheus / "prom.yml").write_text(
        "scrape_configs:\n"
        "  - job_name: loki\n"
        "    static_configs:\n"
        "      - targets: ['loki:3100']\n"
        "        labels:\n"
        "          service: loki\n"
        "          service_type: logging\n"
    )
    return tmp_path


@pytest.fixture
def stack_config(bundle_dir):
    """Configuration pointing at the fake stack with a short retry budget."""
    values = dict(IN_CLUSTER_URLS)
    values["example_api_url"] = EXAMPLE_API
    return StackConfig(
        max_retries=3,
        retry_interval=0.5,
        timeout=1.0,
        test_timeout=5.0,
        log_ingest_wait=10.0,
        bundle_dir=bundle_dir,
        **values
    )


def results_by_name(report) -> Dict[str, Any]:
    return {result.name: result for result in report.results}


def run_suite(suite_cls, config, stack: FakeStack, sleep: Optional[Callable] = None, **kwargs):
    client = stack.client()
    try:
        suite = suite_cls(config, client=client, sleep=sleep or RecordingSleep(), **kwargs)
        return suite.run()
    finally:
        client.close()
