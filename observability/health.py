"""
Check result model for Stack Probes.

A suite produces a list of CheckResult entries which are folded into a
SuiteReport. The report alone decides the process exit code: a run fails
only when a critical check failed.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, List, Optional, Any


class CheckStatus(Enum):
    """Outcome of a single check."""
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    SKIP = "skip"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class CheckResult:
    """Individual check result."""
    name: str
    status: CheckStatus
    message: str
    critical: bool = True
    duration_ms: float = 0.0
    attempts: int = 1
    timestamp: str = field(default_factory=utc_timestamp)
    section: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_critical_failure(self) -> bool:
        return self.status == CheckStatus.FAIL and self.critical

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result['status'] = self.status.value
        return result


@dataclass
class SuiteReport:
    """Complete report of one suite run."""
    suite: str
    timestamp: str
    results: List[CheckResult]
    run_id: Optional[str] = None
    duration_ms: float = 0.0
    aborted: bool = False
    abort_reason: Optional[str] = None

    def count(self, status: CheckStatus) -> int:
        return len([r for r in self.results if r.status == status])

    @property
    def passed(self) -> int:
        return self.count(CheckStatus.PASS)

    @property
    def failed(self) -> int:
        return self.count(CheckStatus.FAIL)

    @property
    def warnings(self) -> int:
        return self.count(CheckStatus.WARN)

    @property
    def skipped(self) -> int:
        return self.count(CheckStatus.SKIP)

    @property
    def critical_failures(self) -> List[CheckResult]:
        return [r for r in self.results if r.is_critical_failure]

    @property
    def exit_code(self) -> int:
        return 1 if self.critical_failures else 0

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "skipped": self.skipped,
            "total": len(self.results),
            "critical_failures": len(self.critical_failures),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'suite': self.suite,
            'run_id': self.run_id,
            'timestamp': self.timestamp,
            'duration_ms': self.duration_ms,
            'status': "passed" if self.exit_code == 0 else "failed",
            'exit_code': self.exit_code,
            'aborted': self.aborted,
            'abort_reason': self.abort_reason,
            'summary': self.summary,
            'results': [result.to_dict() for result in self.results]
        }
