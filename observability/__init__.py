"""
Observability package for Stack Probes.

Structured JSON logging with run correlation, Prometheus metrics for probe
runs, and the check result model shared by every suite.
"""

from .metrics import ProbeMetrics, probe_metrics, metrics_registry
from .logging import StructuredLogger, set_run_context, generate_run_id, configure_logging
from .health import CheckStatus, CheckResult, SuiteReport

__all__ = [
    "ProbeMetrics",
    "probe_metrics",
    "metrics_registry",
    "StructuredLogger",
    "set_run_context",
    "generate_run_id",
    "configure_logging",
    "CheckStatus",
    "CheckResult",
    "SuiteReport"
]
