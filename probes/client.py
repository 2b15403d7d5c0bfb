# probes/client.py
"""
HTTP probe client for Stack Probes.

Thin wrapper over httpx used by every check. Transport problems never
escape as exceptions: they come back as a ProbeResponse with status code 0
(rendered "000", like curl) so that callers can treat "no answer" the same
way as any other unhealthy answer.
"""

import re
import time
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from observability.logging import probe_logger
from observability.metrics import probe_metrics

NO_RESPONSE = 0


class ProbeError(Exception):
    """Base exception for probe errors."""
    pass


class ProbeTransportError(ProbeError):
    """Transport-level errors (connection refused, DNS, bad payload)."""
    pass


class ProbeTimeoutError(ProbeError):
    """Probe request timed out."""
    pass


_MISSING = object()


@dataclass
class ProbeResponse:
    """Result of one GET against a third-party endpoint."""
    url: str
    status_code: int = NO_RESPONSE
    text: str = ""
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    timed_out: bool = False

    def __post_init__(self):
        self._json = _MISSING

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    @property
    def reachable(self) -> bool:
        return self.status_code != NO_RESPONSE

    @property
    def http_code(self) -> str:
        """Status code formatted the way curl prints it."""
        return f"{self.status_code:03d}"

    @property
    def json(self) -> Any:
        """Parsed JSON body, or None when the body is not JSON."""
        if self._json is _MISSING:
            try:
                self._json = json.loads(self.text) if self.text else None
            except ValueError:
                self._json = None
        return self._json

    @property
    def json_status_success(self) -> bool:
        """True for Prometheus-style envelopes with status == success."""
        payload = self.json
        return isinstance(payload, dict) and payload.get("status") == "success"

    def matches(self, pattern: str) -> bool:
        """Search the body for a pattern, like ``grep -q``."""
        if not pattern:
            return False
        if pattern in self.text:
            return True
        try:
            return re.search(pattern, self.text) is not None
        except re.error:
            return False

    def require_json(self) -> Any:
        """Return the JSON body or raise ProbeTransportError."""
        if self.timed_out:
            raise ProbeTimeoutError(f"Timed out waiting for {self.url}")
        if not self.reachable:
            raise ProbeTransportError(f"No response from {self.url}: {self.error}")
        payload = self.json
        if payload is None:
            raise ProbeTransportError(f"Response from {self.url} is not JSON (HTTP {self.http_code})")
        return payload


class ProbeClient:
    """Synchronous HTTP client used by all suites."""

    def __init__(self, timeout: float = 5.0, auth: Optional[Tuple[str, str]] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self.auth = auth
        self._client = httpx.Client(timeout=timeout, transport=transport, follow_redirects=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self._client.close()

    def get(self, url: str, params: Optional[Dict[str, Any]] = None,
            auth: Optional[Tuple[str, str]] = None, service: str = "unknown") -> ProbeResponse:
        """Issue a GET; never raises for transport-level failures."""
        start_time = time.time()
        response = ProbeResponse(url=url)

        try:
            http_response = self._client.get(url, params=params, auth=auth or self.auth)
            response.status_code = http_response.status_code
            response.text = http_response.text
        except httpx.TimeoutException as e:
            response.error = f"Request timed out after {self.timeout}s: {e}"
            response.timed_out = True
        except httpx.HTTPError as e:
            response.error = f"Request failed: {e}"

        response.elapsed_ms = (time.time() - start_time) * 1000
        probe_metrics.record_http_probe(service, response.status_code, response.elapsed_ms / 1000)
        probe_logger.http_probe(
            service=service,
            method="GET",
            url=url,
            status_code=response.status_code,
            duration_ms=response.elapsed_ms,
            error=response.error
        )
        return response
