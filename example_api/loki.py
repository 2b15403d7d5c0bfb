# example_api/loki.py
"""
Ship log records straight to Loki's push API.

Records are formatted by the attached formatter (the structured JSON one)
and pushed one stream entry at a time. The handler is meant to sit behind
a QueueListener so request handling never waits on Loki.
"""

import time
import logging
from typing import Dict, Optional

import httpx

PUSH_PATH = "/loki/api/v1/push"


class LokiHandler(logging.Handler):
    """logging.Handler posting each record to Loki with fixed stream labels."""

    def __init__(self, url: str, labels: Dict[str, str], timeout: float = 2.0,
                 client: Optional[httpx.Client] = None):
        super().__init__()
        self.push_url = url.rstrip("/") + PUSH_PATH
        self.labels = dict(labels)
        self.client = client or httpx.Client(timeout=timeout)

    def build_payload(self, record: logging.LogRecord) -> dict:
        # Loki wants nanosecond timestamps as strings
        timestamp_ns = str(int(record.created * 1e9) if record.created else time.time_ns())
        labels = dict(self.labels)
        labels["level"] = record.levelname.lower()
        return {
            "streams": [{
                "stream": labels,
                "values": [[timestamp_ns, self.format(record)]],
            }]
        }

    def emit(self, record: logging.LogRecord):
        try:
            response = self.client.post(self.push_url, json=self.build_payload(record))
            response.raise_for_status()
        except httpx.HTTPError:
            self.handleError(record)

    def close(self):
        self.client.close()
        super().close()
