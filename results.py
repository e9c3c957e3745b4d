"""
results.py – Aggregation of per-file outcomes for directory passes.

ResultAggregator is purely additive: every outcome is folded in exactly once,
nothing is rolled back and nothing is retried. DirectoryCipher feeds it from a
single consumer; the lock only guards against callers that fold from several
threads themselves.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from file_cipher import FileOutcome, Status


@dataclass(frozen=True)
class Summary:
    """
    Aggregate of one directory pass.

    Attributes
    ----------
    total : int
        Number of dispatched files (succeeded + failed + cancelled).
    succeeded, failed, cancelled : int
        Per-status counts.
    failures : list of (path, reason)
        Failed files, sorted by path.
    skipped : list of (path, reason)
        Walk entries that were never dispatched, sorted by path.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "failures": [list(item) for item in self.failures],
            "skipped": [list(item) for item in self.skipped],
        }


class ResultAggregator:
    """Thread-safe accumulator of FileOutcome values."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._succeeded = 0
        self._cancelled = 0
        self._failures: Dict[str, str] = {}
        self._outcomes: Dict[str, str] = {}
        self._skipped: Dict[str, str] = {}

    def fold(self, outcome: FileOutcome) -> None:
        with self._lock:
            if outcome.status is Status.SUCCEEDED:
                self._succeeded += 1
            elif outcome.status is Status.CANCELLED:
                self._cancelled += 1
            else:
                self._failures[outcome.path] = outcome.reason
            self._outcomes[outcome.path] = outcome.reason

    def skip(self, path: str, reason: str) -> None:
        """Record a walk entry that was not turned into a job."""
        with self._lock:
            self._skipped[path] = reason

    def outcomes(self) -> Dict[str, str]:
        """Mapping path -> reason ("ok", "cancelled" or the failure)."""
        with self._lock:
            return dict(self._outcomes)

    def summary(self) -> Summary:
        with self._lock:
            failures = sorted(self._failures.items())
            return Summary(
                total=self._succeeded + len(failures) + self._cancelled,
                succeeded=self._succeeded,
                failed=len(failures),
                cancelled=self._cancelled,
                failures=failures,
                skipped=sorted(self._skipped.items()),
            )
