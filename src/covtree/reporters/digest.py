"""Pass/fail digest written next to the Clover report.

The digest uses the mocha JSON reporter layout (``stats``, ``passes``,
``failures``, ``skipped``) so CI dashboards that understand test results can
show per-file coverage verdicts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from covtree.analyzers.thresholds import ThresholdVerdict
    from covtree.models.tree import FileNode


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)


@dataclass
class FixedClock:
    """Clock returning a fixed instant, advanced by ``step`` on every call."""

    instant: datetime
    step: timedelta = timedelta(0)

    def now(self) -> datetime:
        current = self.instant
        self.instant = current + self.step
        return current


def epoch_millis(moment: datetime) -> int:
    """Milliseconds since the Unix epoch."""
    return int(moment.timestamp() * 1000)


def iso_millis(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2024-01-15T10:30:00.000Z``."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class DigestEntry:
    """One file's verdict in the digest."""

    title: str
    full_title: str
    error: str | None = None
    duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "fullTitle": self.full_title,
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ReportDigest:
    """Finalized pass/fail digest of a report run."""

    passes: list[DigestEntry]
    failures: list[DigestEntry]
    start: datetime
    end: datetime

    @property
    def tests(self) -> int:
        return len(self.passes) + len(self.failures)

    @property
    def duration_ms(self) -> int:
        return int((self.end - self.start) / timedelta(milliseconds=1))

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "stats": {
                "suites": self.tests,
                "tests": self.tests,
                "passes": len(self.passes),
                "pending": 0,
                "failures": len(self.failures),
                "start": iso_millis(self.start),
                "end": iso_millis(self.end),
                "duration": self.duration_ms,
            },
            "failures": [entry.to_dict() for entry in self.failures],
            "passes": [entry.to_dict() for entry in self.passes],
            "skipped": [],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"


class DigestBuilder:
    """Accumulates verdicts during a single report walk.

    Owned by exactly one walk; ``finish`` freezes the result.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._start = clock.now()
        self._passes: list[DigestEntry] = []
        self._failures: list[DigestEntry] = []

    @property
    def start(self) -> datetime:
        return self._start

    def record(self, node: FileNode, verdict: ThresholdVerdict) -> None:
        """Append *node*'s verdict to the passes or the failures."""
        if verdict.passed:
            self._passes.append(_entry(node))
        else:
            self._failures.append(_entry(node, error=verdict.error))

    def finish(self) -> ReportDigest:
        """Stamp the end time and return the finalized digest."""
        return ReportDigest(
            passes=list(self._passes),
            failures=list(self._failures),
            start=self._start,
            end=self._clock.now(),
        )


def _entry(node: FileNode, error: str | None = None) -> DigestEntry:
    return DigestEntry(
        title=f"Coverage: {node.name}",
        full_title=f"Coverage: {node.path}",
        error=error,
    )
