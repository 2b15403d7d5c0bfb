"""
Probes for the operated observability services.

HTTP client, fixed-budget health polling, API wrappers and offline
validators used by the check suites.
"""

from .client import ProbeClient, ProbeResponse, ProbeError, ProbeTransportError, ProbeTimeoutError
from .retry import HealthEndpoint, PollOutcome, poll_endpoint
from .services import PrometheusAPI, GrafanaAPI, LokiAPI, AlertmanagerAPI, TempoAPI

__all__ = [
    "ProbeClient",
    "ProbeResponse",
    "ProbeError",
    "ProbeTransportError",
    "ProbeTimeoutError",
    "HealthEndpoint",
    "PollOutcome",
    "poll_endpoint",
    "PrometheusAPI",
    "GrafanaAPI",
    "LokiAPI",
    "AlertmanagerAPI",
    "TempoAPI",
]
