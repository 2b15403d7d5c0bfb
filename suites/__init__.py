"""
Check suites for the observability stack.

Each suite is an ordered group of checks run as one command and reported
as a SuiteReport whose exit code is non-zero only for critical failures.
"""

from .config import StackConfig, ConfigurationError
from .base import CheckSuite, SuiteAborted, check
from .startup import StartupCheck
from .service_health import ServiceHealthSuite
from .metrics import MetricsCollectionSuite
from .alerts import AlertConfigurationSuite
from .logs import LogAggregationSuite
from .restore import BackupRestoreSuite

SUITES = {
    StartupCheck.name: StartupCheck,
    ServiceHealthSuite.name: ServiceHealthSuite,
    MetricsCollectionSuite.name: MetricsCollectionSuite,
    AlertConfigurationSuite.name: AlertConfigurationSuite,
    LogAggregationSuite.name: LogAggregationSuite,
    BackupRestoreSuite.name: BackupRestoreSuite,
}

__all__ = [
    "StackConfig",
    "ConfigurationError",
    "CheckSuite",
    "SuiteAborted",
    "check",
    "StartupCheck",
    "ServiceHealthSuite",
    "MetricsCollectionSuite",
    "AlertConfigurationSuite",
    "LogAggregationSuite",
    "BackupRestoreSuite",
    "SUITES",
]
