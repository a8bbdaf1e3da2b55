from __future__ import annotations

import json
import sys
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, TextIO

from .cleanup import CleanupResult, DiscoveredRoot
from .results import LoopStatistics, TestOutcome, TestSuiteRun
from .tracker import Tracker

RULE = "=" * 80
THIN_RULE = "-" * 80


def _iso(when: datetime | None) -> str | None:
    return when.isoformat() if when else None


def _outcome_dict(outcome: TestOutcome) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": outcome.name,
        "operation": outcome.operation.value,
        "passed": outcome.passed,
        "duration_ms": round(outcome.elapsed * 1000, 3),
        "message": outcome.message,
        "error": None,
    }
    if outcome.error is not None:
        data["error"] = {
            "code": outcome.error.code.name,
            "result": outcome.error.raw_code,
            "description": outcome.error.description,
            "info": outcome.error.info,
            "text": str(outcome.error),
        }
    return data


class Reporter:
    """
    Renders what a run did.  ``report_format`` picks the rendering of
    :py:meth:`report_run`: ``console`` (human readable text), ``json`` (one
    JSON document) or ``xml`` (a JUnit style ``testsuite``, which CI systems
    understand).  Everything else is always rendered as text.

    Keyword Args:
        stream: where to write; defaults to :py:data:`sys.stdout`
        report_format: ``console``, ``json`` or ``xml``

    """

    def __init__(self, stream: TextIO | None = None, report_format: str = "console") -> None:
        self.stream: TextIO = stream if stream is not None else sys.stdout
        self.report_format = report_format

    def write(self, text: str = "") -> None:
        print(text, file=self.stream)

    # Single runs

    def report_run(
        self,
        run: TestSuiteRun,
        tracker: Tracker,
        cleanup: CleanupResult | None = None,
    ) -> None:
        """
        Report on one run.

        Args:
            run: the outcomes of the run
            tracker: the entries the run created

        Keyword Args:
            cleanup: what cleanup did, or ``None`` if cleanup did not run.
                If it did not run, the entries in ``tracker`` are still in the
                directory and we list them.

        """
        if self.report_format == "json":
            self.write(self.render_json(run, tracker, cleanup))
        elif self.report_format == "xml":
            self.write(self.render_xml(run))
        else:
            self.write(self.render_console(run, tracker, cleanup))

    def render_console(
        self,
        run: TestSuiteRun,
        tracker: Tracker,
        cleanup: CleanupResult | None = None,
    ) -> str:
        stats = run.stats()
        lines = [
            "",
            RULE,
            "LDAP OPERATIONS TEST SUITE RESULTS",
            RULE,
            f"Total Tests:     {stats.total}",
            f"Passed:          {stats.passed}",
            f"Failed:          {stats.failed}",
            f"Duration:        {stats.duration:.3f}s",
            RULE,
        ]
        if run.results:
            lines.extend(["", "Detailed Results:", THIN_RULE])
            for operation, outcomes in run.by_operation():
                lines.extend(["", f"{operation.value} Tests:"])
                for outcome in outcomes:
                    status = "✓ PASS" if outcome.passed else "✗ FAIL"
                    elapsed_ms = int(outcome.elapsed * 1000)
                    lines.append(f"  {status}  {outcome.name:<50}  {elapsed_ms:6d}ms")
                    if not outcome.passed and outcome.error is not None:
                        lines.append(f"         Error: {outcome.error}")
                    if outcome.message:
                        lines.append(f"         {outcome.message}")
            lines.append("")
        if cleanup is None:
            lines.extend(
                [
                    tracker.summarize(),
                    "",
                    "Note: Test data has been preserved. Use --cleanup flag to "
                    "automatically remove test data.",
                    "",
                ]
            )
        else:
            lines.extend([self.render_cleanup(cleanup), ""])
        lines.append(RULE)
        lines.append("✓ ALL TESTS PASSED" if run.all_passed else "✗ SOME TESTS FAILED")
        lines.append(RULE)
        return "\n".join(lines)

    def render_cleanup(self, cleanup: CleanupResult) -> str:
        lines = [
            f"Cleanup: {len(cleanup.deleted)} deleted, {len(cleanup.failed)} failed, "
            f"{len(cleanup.missing)} already gone"
        ]
        for dn, error in cleanup.failed:
            lines.append(f"  ✗ {dn}: {error}")
        return "\n".join(lines)

    def render_json(
        self,
        run: TestSuiteRun,
        tracker: Tracker,
        cleanup: CleanupResult | None = None,
    ) -> str:
        stats = run.stats()
        document: dict[str, Any] = {
            "name": run.name,
            "started_at": _iso(run.started_at),
            "ended_at": _iso(run.ended_at),
            "duration_s": round(stats.duration, 3),
            "total": stats.total,
            "passed": stats.passed,
            "failed": stats.failed,
            "all_passed": run.all_passed,
            "results": [_outcome_dict(outcome) for outcome in run.results],
        }
        if cleanup is None:
            document["cleanup"] = None
            document["preserved"] = [
                {
                    "dn": entry.dn,
                    "kind": entry.kind.value,
                    "created_at": _iso(entry.created_at),
                }
                for entry in tracker.entries()
            ]
        else:
            document["cleanup"] = {
                "deleted": cleanup.deleted,
                "failed": [
                    {"dn": dn, "error": str(error)} for dn, error in cleanup.failed
                ],
                "missing": cleanup.missing,
                "errors": cleanup.errors,
            }
            document["preserved"] = []
        return json.dumps(document, indent=2)

    def render_xml(self, run: TestSuiteRun) -> str:
        stats = run.stats()
        suite = ET.Element(
            "testsuite",
            {
                "name": run.name,
                "tests": str(stats.total),
                "failures": str(stats.failed),
                "errors": "0",
                "time": f"{stats.duration:.3f}",
                "timestamp": _iso(run.started_at) or "",
            },
        )
        for outcome in run.results:
            case = ET.SubElement(
                suite,
                "testcase",
                {
                    "classname": outcome.operation.value,
                    "name": outcome.name,
                    "time": f"{outcome.elapsed:.3f}",
                },
            )
            if not outcome.passed:
                failure = ET.SubElement(case, "failure", {"message": outcome.message})
                if outcome.error is not None:
                    failure.text = str(outcome.error)
            elif outcome.message:
                ET.SubElement(case, "system-out").text = outcome.message
        ET.indent(suite)
        return ET.tostring(suite, encoding="unicode", xml_declaration=True)

    # Loop mode

    def report_iteration(
        self, iteration: int, run: TestSuiteRun, stats: LoopStatistics
    ) -> None:
        current = run.stats()
        self.write()
        self.write(
            f"[Iteration {iteration}] Tests: {current.passed} passed, "
            f"{current.failed} failed ({current.duration:.2f}s)"
        )
        self.write(
            f"[Cumulative] Runs: {stats.total_runs}, Success: {stats.successful_runs}, "
            f"Failed: {stats.failed_runs}, Total Tests: "
            f"{stats.total_passed}/{stats.total_tests} ({stats.pass_rate:.1f}% pass rate)"
        )
        self.write()

    def report_loop(self, stats: LoopStatistics) -> None:
        lines = [
            "",
            RULE,
            "LDAP OPERATIONS TEST SUITE - LOOP MODE SUMMARY",
            RULE,
            f"Total Runtime:        {stats.elapsed:.0f}s",
            f"Total Iterations:     {stats.total_runs}",
            f"Successful Runs:      {stats.successful_runs} ({stats.success_rate:.1f}%)",
            f"Failed Runs:          {stats.failed_runs} ({stats.failure_rate:.1f}%)",
            THIN_RULE,
            f"Total Tests Executed: {stats.total_tests}",
            f"Tests Passed:         {stats.total_passed} ({stats.pass_rate:.1f}%)",
            f"Tests Failed:         {stats.total_failed} ({stats.test_failure_rate:.1f}%)",
            THIN_RULE,
            f"Total Test Time:      {stats.total_duration:.3f}s",
            f"Average Per Run:      {stats.average_per_run:.3f}s",
        ]
        if stats.total_tests:
            lines.append(f"Average Per Test:     {stats.average_per_test:.3f}s")
        lines.append(RULE)
        if stats.failed_runs == 0:
            lines.append("✓ ALL RUNS COMPLETED SUCCESSFULLY")
        else:
            lines.append(f"✗ {stats.failed_runs} RUNS FAILED")
        lines.append(RULE)
        self.write("\n".join(lines))

    # Test data maintenance

    def report_test_data(
        self, base_dn: str, listing: list[tuple[DiscoveredRoot, int]]
    ) -> None:
        now = datetime.now(timezone.utc)
        if not listing:
            self.write(f"No test data found under {base_dn}.")
            return
        self.write(f"=== Test Data under {base_dn} ===")
        for root, size in listing:
            hours = root.age(now).total_seconds() / 3600
            self.write(
                f"  - {root.dn} (created {root.created_at.isoformat()}, "
                f"{hours:.1f}h ago, {size} entries)"
            )
        self.write(f"Total test roots: {len(listing)}")

    def report_retention(self, age: str, cleanup: CleanupResult) -> None:
        self.write(f"Removing test data older than {age}")
        self.write(self.render_cleanup(cleanup))
