from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .exceptions import DirectoryError


class OperationKind(Enum):
    """
    The LDAP operation a scenario exercises.
    """

    BIND = "Bind"
    ADD = "Add"
    SEARCH = "Search"
    MODIFY = "Modify"
    COMPARE = "Compare"
    MODIFY_DN = "ModifyDN"
    DELETE = "Delete"
    ABANDON = "Abandon"
    UNBIND = "Unbind"


@dataclass(frozen=True)
class TestOutcome:
    """
    The result of running one scenario.
    """

    __test__ = False  # not a pytest test class

    name: str  #: the scenario name
    operation: OperationKind  #: the operation the scenario exercises
    passed: bool  #: did what we observed match what we expected?
    elapsed: float  #: seconds the scenario took
    message: str = ""  #: human readable description of what happened
    error: DirectoryError | None = None  #: the directory error, if any


@dataclass(frozen=True)
class SuiteStats:
    total: int
    passed: int
    failed: int
    duration: float  #: seconds


@dataclass
class TestSuiteRun:
    """
    The ordered outcomes of one run of our suites.
    """

    __test__ = False  # not a pytest test class

    name: str = "LDAP Operations Test Suite"
    results: list[TestOutcome] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def start(self) -> None:
        self.started_at = datetime.now(timezone.utc)

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)

    def extend(self, outcomes: list[TestOutcome]) -> None:
        self.results.extend(outcomes)

    @property
    def duration(self) -> float:
        if self.started_at is None:
            return 0.0
        ended = self.ended_at or datetime.now(timezone.utc)
        return (ended - self.started_at).total_seconds()

    def stats(self) -> SuiteStats:
        passed = sum(1 for result in self.results if result.passed)
        return SuiteStats(
            total=len(self.results),
            passed=passed,
            failed=len(self.results) - passed,
            duration=self.duration,
        )

    @property
    def all_passed(self) -> bool:
        return all(result.passed for result in self.results)

    def by_operation(self) -> list[tuple[OperationKind, list[TestOutcome]]]:
        """
        Group our outcomes by operation, keeping the order in which each
        operation first appeared.
        """
        groups: dict[OperationKind, list[TestOutcome]] = {}
        for result in self.results:
            groups.setdefault(result.operation, []).append(result)
        return list(groups.items())


@dataclass
class LoopStatistics:
    """
    Counters accumulated over every iteration of loop mode.  These only ever
    go up.
    """

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    total_tests: int = 0
    total_passed: int = 0
    total_failed: int = 0
    total_duration: float = 0.0  #: seconds spent in suite runs
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record(self, run: TestSuiteRun, failed: bool = False) -> None:
        """
        Fold one iteration into our counters.

        Args:
            run: the suite run of the iteration

        Keyword Args:
            failed: ``True`` if the iteration ended with a fatal error

        """
        stats = run.stats()
        self.total_runs += 1
        if failed:
            self.failed_runs += 1
        else:
            self.successful_runs += 1
        self.total_tests += stats.total
        self.total_passed += stats.passed
        self.total_failed += stats.failed
        self.total_duration += stats.duration

    @staticmethod
    def _percent(part: int, whole: int) -> float:
        return (part / whole * 100.0) if whole else 0.0

    @property
    def pass_rate(self) -> float:
        """
        Percentage of all tests that passed.
        """
        return self._percent(self.total_passed, self.total_tests)

    @property
    def success_rate(self) -> float:
        """
        Percentage of iterations that completed without a fatal error.
        """
        return self._percent(self.successful_runs, self.total_runs)

    @property
    def failure_rate(self) -> float:
        return self._percent(self.failed_runs, self.total_runs)

    @property
    def test_failure_rate(self) -> float:
        return self._percent(self.total_failed, self.total_tests)

    @property
    def average_per_run(self) -> float:
        return self.total_duration / self.total_runs if self.total_runs else 0.0

    @property
    def average_per_test(self) -> float:
        return self.total_duration / self.total_tests if self.total_tests else 0.0

    @property
    def elapsed(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()
