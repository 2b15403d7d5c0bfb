# probes/retry.py
"""
Fixed-budget health polling.

An endpoint is polled up to ``max_retries`` times with a fixed sleep between
attempts. There is no backoff curve and no sleep after the final attempt.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from observability.logging import probe_logger
from observability.metrics import probe_metrics
from .client import ProbeClient, ProbeResponse


@dataclass
class HealthEndpoint:
    """A third-party health endpoint and how to judge its answer."""
    name: str
    url: str
    expected_pattern: Optional[str] = None
    critical: bool = True
    max_retries: Optional[int] = None

    def is_healthy(self, response: ProbeResponse) -> bool:
        # A pattern check ignores the status code; otherwise only 200 counts.
        if self.expected_pattern:
            return response.matches(self.expected_pattern)
        return response.ok

    def success_message(self) -> str:
        if self.expected_pattern:
            return f"{self.name} is healthy (matched: {self.expected_pattern})"
        return f"{self.name} is healthy (HTTP 200)"


@dataclass
class PollOutcome:
    """Result of polling one endpoint."""
    endpoint: HealthEndpoint
    healthy: bool
    attempts: int
    last_response: Optional[ProbeResponse]

    @property
    def http_code(self) -> str:
        return self.last_response.http_code if self.last_response else "000"


def poll_endpoint(client: ProbeClient, endpoint: HealthEndpoint, max_retries: int,
                  retry_interval: float, sleep: Callable[[float], None] = time.sleep,
                  auth=None, on_retry: Optional[Callable[[int, int, ProbeResponse], None]] = None) -> PollOutcome:
    """Poll an endpoint until it is healthy or the retry budget is spent."""
    budget = endpoint.max_retries if endpoint.max_retries is not None else max_retries
    budget = max(1, int(budget))
    response = None

    for attempt in range(1, budget + 1):
        response = client.get(endpoint.url, auth=auth, service=endpoint.name)

        if endpoint.is_healthy(response):
            return PollOutcome(endpoint=endpoint, healthy=True, attempts=attempt,
                               last_response=response)

        if attempt < budget:
            probe_metrics.record_retry(endpoint.name)
            probe_logger.retry_attempt(endpoint.name, attempt, budget,
                                       response.status_code, retry_interval)
            if on_retry is not None:
                on_retry(attempt, budget, response)
            sleep(retry_interval)

    return PollOutcome(endpoint=endpoint, healthy=False, attempts=budget,
                       last_response=response)
