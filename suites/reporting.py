# suites/reporting.py
"""
Console output for suite runs.

Human-readable progress goes to stdout with ANSI colours; machine-readable
output is the report's JSON form. Structured logs go to stderr separately.
"""

import sys
import json
from datetime import datetime, timezone
from typing import Optional, TextIO

from observability.health import CheckResult, CheckStatus, SuiteReport

RED = '\033[0;31m'
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
BLUE = '\033[0;34m'
NC = '\033[0m'

BANNER = "=" * 38

MARKERS = {
    CheckStatus.PASS: (GREEN, "[✓ PASS]"),
    CheckStatus.FAIL: (RED, "[✗ FAIL]"),
    CheckStatus.WARN: (YELLOW, "[⚠ WARN]"),
    CheckStatus.SKIP: (YELLOW, "[SKIP]"),
}


def print_json(data, stream: Optional[TextIO] = None):
    """Pretty print JSON data."""
    print(json.dumps(data, indent=2, default=str), file=stream or sys.stdout)


class Console:
    """Writes suite progress for an operator watching the terminal."""

    def __init__(self, stream: Optional[TextIO] = None, color: bool = True, quiet: bool = False):
        self.stream = stream or sys.stdout
        self.color = color
        self.quiet = quiet

    def _paint(self, color: str, text: str) -> str:
        return f"{color}{text}{NC}" if self.color else text

    def write(self, text: str = ""):
        if not self.quiet:
            print(text, file=self.stream)

    def banner(self, title: str):
        self.write()
        self.write(BANNER)
        self.write(f"  {title}")
        self.write(BANNER)
        self.write()
        self.write(f"Timestamp: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')}")
        self.write()

    def section(self, title: str):
        self.write()
        self.write(self._paint(YELLOW, f"=== {title} ==="))

    def info(self, message: str):
        self.write(f"{self._paint(BLUE, '[INFO]')} {message}")

    def detail(self, message: str):
        self.write(f"  {message}")

    def result(self, result: CheckResult):
        color, marker = MARKERS[result.status]
        self.write(f"{self._paint(color, marker)} {result.message}")

    def summary(self, report: SuiteReport, title: str, success_text: str, failure_text: str,
                hints: Optional[list] = None):
        """Print the closing summary block of a suite."""
        self.write()
        self.write(BANNER)
        self.write(f"  {title}")
        self.write(BANNER)
        self.write(self._paint(GREEN, f"Passed:   {report.passed}"))
        self.write(self._paint(RED, f"Failed:   {report.failed}"))
        self.write(self._paint(YELLOW, f"Warnings: {report.warnings}"))
        if report.skipped:
            self.write(f"Skipped:  {report.skipped}")
        self.write(BANNER)
        self.write()

        if report.aborted:
            self.write(self._paint(RED, f"ABORTED: {report.abort_reason}"))

        if report.exit_code == 0:
            self.write(self._paint(GREEN, success_text))
        else:
            self.write(self._paint(RED, failure_text))
            for failure in report.critical_failures:
                self.detail(f"- {failure.name}: {failure.message}")

        for hint in hints or []:
            self.write(hint)


class NullConsole(Console):
    """Console that discards everything; used for --json runs and tests."""

    def __init__(self):
        super().__init__(quiet=True)
