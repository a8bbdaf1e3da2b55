from datetime import datetime, timedelta, timezone
from io import StringIO
import json
import unittest
import xml.etree.ElementTree as ET

from ldap_conformance.cleanup import CleanupResult, DiscoveredRoot
from ldap_conformance.exceptions import DirectoryError, ResultCode
from ldap_conformance.report import Reporter
from ldap_conformance.results import LoopStatistics, OperationKind, TestOutcome, TestSuiteRun
from ldap_conformance.tracker import EntryKind, Tracker


class ReportMixin:

    report_format = "console"

    def setUp(self):
        self.stream = StringIO()
        self.reporter = Reporter(stream=self.stream, report_format=self.report_format)
        self.error = DirectoryError(
            "add", ResultCode.INSUFFICIENT_ACCESS, info="no write access"
        )
        self.run = TestSuiteRun()
        self.run.start()
        self.run.extend(
            [
                TestOutcome("Valid Bind Test", OperationKind.BIND, True, 0.012, "bound"),
                TestOutcome(
                    "Add OU Test",
                    OperationKind.ADD,
                    False,
                    0.034,
                    "Failed to add OU",
                    self.error,
                ),
            ]
        )
        self.run.finish()
        self.tracker = Tracker()
        self.tracker.track("ou=ldap-test-20250101-120000,dc=example,dc=com", EntryKind.CONTAINER)

    @property
    def output(self):
        return self.stream.getvalue()


class TestReporter_console(ReportMixin, unittest.TestCase):

    def test_summary(self):
        self.reporter.report_run(self.run, self.tracker)
        self.assertIn("LDAP OPERATIONS TEST SUITE RESULTS", self.output)
        self.assertIn("Total Tests:     2", self.output)
        self.assertIn("Passed:          1", self.output)
        self.assertIn("Failed:          1", self.output)
        self.assertIn("✗ SOME TESTS FAILED", self.output)

    def test_grouped_by_operation(self):
        self.reporter.report_run(self.run, self.tracker)
        self.assertLess(self.output.index("Bind Tests:"), self.output.index("Add Tests:"))
        self.assertIn("✓ PASS  Valid Bind Test", self.output)
        self.assertIn("✗ FAIL  Add OU Test", self.output)
        self.assertIn("Error: add failed", self.output)

    def test_preserved_data_is_listed_without_cleanup(self):
        self.reporter.report_run(self.run, self.tracker)
        self.assertIn("=== Created Test Data Summary ===", self.output)
        self.assertIn("Use --cleanup flag", self.output)

    def test_cleanup_summary(self):
        cleanup = CleanupResult(deleted=["a", "b"], missing=["c"])
        self.reporter.report_run(self.run, self.tracker, cleanup=cleanup)
        self.assertIn("Cleanup: 2 deleted, 0 failed, 1 already gone", self.output)
        self.assertNotIn("Created Test Data Summary", self.output)

    def test_all_passed(self):
        run = TestSuiteRun(results=[self.run.results[0]])
        self.reporter.report_run(run, Tracker(), cleanup=CleanupResult())
        self.assertIn("✓ ALL TESTS PASSED", self.output)


class TestReporter_json(ReportMixin, unittest.TestCase):

    report_format = "json"

    def test_document(self):
        self.reporter.report_run(self.run, self.tracker)
        document = json.loads(self.output)
        self.assertEqual(document["total"], 2)
        self.assertFalse(document["all_passed"])
        self.assertEqual(document["results"][1]["operation"], "Add")
        self.assertEqual(document["results"][1]["error"]["code"], "INSUFFICIENT_ACCESS")
        self.assertEqual(document["results"][1]["error"]["result"], 50)
        self.assertIsNone(document["cleanup"])
        self.assertEqual(len(document["preserved"]), 1)
        self.assertEqual(document["preserved"][0]["kind"], "OU")

    def test_cleanup_counts(self):
        cleanup = CleanupResult(
            deleted=["a"], failed=[("b", self.error)], missing=["c", "d"]
        )
        self.reporter.report_run(self.run, self.tracker, cleanup=cleanup)
        document = json.loads(self.output)
        self.assertEqual(document["cleanup"]["errors"], 3)
        self.assertEqual(document["cleanup"]["missing"], ["c", "d"])
        self.assertEqual(document["preserved"], [])


class TestReporter_xml(ReportMixin, unittest.TestCase):

    report_format = "xml"

    def test_junit_testsuite(self):
        self.reporter.report_run(self.run, self.tracker)
        suite = ET.fromstring(self.output.strip().split("\n", 1)[1])
        self.assertEqual(suite.tag, "testsuite")
        self.assertEqual(suite.get("tests"), "2")
        self.assertEqual(suite.get("failures"), "1")
        cases = suite.findall("testcase")
        self.assertEqual([case.get("classname") for case in cases], ["Bind", "Add"])
        self.assertIsNone(cases[0].find("failure"))
        self.assertEqual(cases[1].find("failure").get("message"), "Failed to add OU")


class TestReporter_loop(ReportMixin, unittest.TestCase):

    def test_iteration_and_summary(self):
        stats = LoopStatistics()
        stats.record(self.run)
        self.reporter.report_iteration(1, self.run, stats)
        self.reporter.report_loop(stats)
        self.assertIn("[Iteration 1] Tests: 1 passed, 1 failed", self.output)
        self.assertIn("Total Tests: 1/2 (50.0% pass rate)", self.output)
        self.assertIn("LOOP MODE SUMMARY", self.output)
        self.assertIn("✓ ALL RUNS COMPLETED SUCCESSFULLY", self.output)

    def test_failed_runs(self):
        stats = LoopStatistics()
        stats.record(TestSuiteRun(), failed=True)
        self.reporter.report_loop(stats)
        self.assertIn("✗ 1 RUNS FAILED", self.output)


class TestReporter_test_data(ReportMixin, unittest.TestCase):

    def test_listing(self):
        root = DiscoveredRoot(
            "ou=ldap-test-20250101-120000,dc=example,dc=com",
            datetime.now(timezone.utc) - timedelta(hours=2),
        )
        self.reporter.report_test_data("dc=example,dc=com", [(root, 4)])
        self.assertIn("2.0h ago, 4 entries", self.output)
        self.assertIn("Total test roots: 1", self.output)

    def test_empty_listing(self):
        self.reporter.report_test_data("dc=example,dc=com", [])
        self.assertIn("No test data found under dc=example,dc=com.", self.output)
