# suites/base.py
"""
Common machinery for check suites.

A suite records one CheckResult per check, in order, and turns them into a
SuiteReport. Checks never raise out of a suite: unexpected exceptions are
recorded as failures and the suite carries on, unless a check explicitly
aborts the run.
"""

import time
import functools
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from observability.health import CheckResult, CheckStatus, SuiteReport
from observability.logging import (
    suite_logger, set_run_context, clear_run_context, generate_run_id, CHECK
)
from observability.metrics import probe_metrics
from probes.client import ProbeClient
from .config import StackConfig
from .reporting import Console, NullConsole


class SuiteAborted(Exception):
    """Raised inside a suite to stop it after a fatal check."""
    pass


def check(name, critical=True):
    """Decorator marking a suite method as one named check.

    The method returns a CheckResult, or records its results itself and
    returns anything else, which is passed through. Exceptions become a
    failed result with the error attached. ``name`` and ``critical`` may be
    callables taking the method's arguments, for checks run once per target.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            check_name = name(*args, **kwargs) if callable(name) else name
            is_critical = critical(*args, **kwargs) if callable(critical) else critical
            outer_start = self._check_started
            self._check_started = time.time()
            token = CHECK.set(check_name)
            try:
                try:
                    result = func(self, *args, **kwargs)
                except SuiteAborted:
                    raise
                except Exception as e:
                    suite_logger.exception(f"Check {check_name} raised", check_name=check_name)
                    result = CheckResult(
                        name=check_name,
                        status=CheckStatus.FAIL,
                        message=f"{check_name} raised {e.__class__.__name__}: {e}",
                        critical=is_critical,
                        error=str(e)
                    )
                if isinstance(result, CheckResult):
                    return self.add(result)
                return result
            finally:
                CHECK.reset(token)
                self._check_started = outer_start

        return wrapper
    return decorator


class CheckSuite:
    """Base class for an ordered group of checks."""

    name = "suite"
    title = "Check Suite"
    summary_title = "Test Summary"
    success_text = "All tests passed!"
    failure_text = "Some tests failed. Please review the output above."

    def __init__(self, config: StackConfig, client: Optional[ProbeClient] = None,
                 console: Optional[Console] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.client = client or ProbeClient(timeout=config.timeout)
        self._owns_client = client is None
        self.console = console or NullConsole()
        self.sleep = sleep
        self.results: List[CheckResult] = []
        self._section: Optional[str] = None
        self._check_started: Optional[float] = None

    # Recording

    def section(self, title: str):
        self._section = title
        self.console.section(title)

    def add(self, result: CheckResult) -> CheckResult:
        if not result.duration_ms and self._check_started is not None:
            result.duration_ms = (time.time() - self._check_started) * 1000
        if result.section is None:
            result.section = self._section
        self.results.append(result)
        self.console.result(result)
        probe_metrics.record_check(self.name, result.name, result.status.value,
                                   result.duration_ms / 1000)
        suite_logger.check_completed(
            check=result.name,
            status=result.status.value,
            critical=result.critical,
            duration_ms=result.duration_ms,
            attempts=result.attempts,
            message=result.message
        )
        return result

    def passed(self, name: str, message: str, **kwargs) -> CheckResult:
        return CheckResult(name=name, status=CheckStatus.PASS, message=message, **kwargs)

    def failed(self, name: str, message: str, critical: bool = True, **kwargs) -> CheckResult:
        return CheckResult(name=name, status=CheckStatus.FAIL, message=message,
                           critical=critical, **kwargs)

    def warned(self, name: str, message: str, **kwargs) -> CheckResult:
        kwargs.setdefault("critical", False)
        return CheckResult(name=name, status=CheckStatus.WARN, message=message, **kwargs)

    def skipped(self, name: str, message: str, **kwargs) -> CheckResult:
        kwargs.setdefault("critical", False)
        return CheckResult(name=name, status=CheckStatus.SKIP, message=message, **kwargs)

    def abort(self, result: CheckResult):
        """Record a fatal result and stop the suite."""
        self.add(result)
        raise SuiteAborted(result.message)

    # Execution

    def execute(self):
        raise NotImplementedError

    def failure_message(self, report: SuiteReport) -> str:
        return self.failure_text

    def hints(self, report: SuiteReport) -> List[str]:
        return []

    def run(self, run_id: Optional[str] = None) -> SuiteReport:
        """Run every check and return the report."""
        run_id = run_id or generate_run_id()
        set_run_context(run_id=run_id, suite=self.name)
        self.results = []
        start_time = time.time()
        timestamp = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        aborted = False
        abort_reason = None

        suite_logger.suite_started(self.name)
        self.console.banner(self.title)

        try:
            self.execute()
        except SuiteAborted as e:
            aborted = True
            abort_reason = str(e)
            suite_logger.error(f"Suite {self.name} aborted: {e}", suite_name=self.name)
        finally:
            if self._owns_client:
                self.client.close()

        report = SuiteReport(
            suite=self.name,
            timestamp=timestamp,
            results=list(self.results),
            run_id=run_id,
            duration_ms=(time.time() - start_time) * 1000,
            aborted=aborted,
            abort_reason=abort_reason
        )

        self.console.summary(report, self.summary_title, self.success_text,
                             self.failure_message(report), self.hints(report))

        counts: Dict[str, Any] = {status.value: report.count(status) for status in CheckStatus}
        probe_metrics.record_suite_run(self.name, report.exit_code, counts)
        suite_logger.suite_completed(
            suite=self.name,
            passed=report.passed,
            failed=report.failed,
            warnings=report.warnings,
            duration_ms=report.duration_ms,
            exit_code=report.exit_code,
            aborted=aborted
        )
        clear_run_context()
        return report
