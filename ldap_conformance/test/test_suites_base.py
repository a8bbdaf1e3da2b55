import unittest

from ldap_conformance.exceptions import DirectoryError, ResultCode
from ldap_conformance.results import OperationKind
from ldap_conformance.suites.base import (
    UNEXPECTED_SUCCESS,
    Scenario,
    ScenarioState,
    accept_either,
    expect_rejection,
    expect_success,
)


def succeed():
    return "result"


def refuse(code=ResultCode.NO_SUCH_OBJECT):
    def action():
        raise DirectoryError("delete", code, dn="cn=x,dc=example,dc=com")

    return action


class TestScenario_lifecycle(unittest.TestCase):

    def setUp(self):
        self.scenario = Scenario("Lifecycle", OperationKind.BIND)

    def test_starts_not_run(self):
        self.assertEqual(self.scenario.state, ScenarioState.NOT_RUN)

    def test_start_moves_to_running(self):
        self.scenario.start()
        self.assertEqual(self.scenario.state, ScenarioState.RUNNING)

    def test_cannot_start_twice(self):
        self.scenario.start()
        with self.assertRaises(RuntimeError):
            self.scenario.start()

    def test_succeed(self):
        outcome = self.scenario.succeed("fine")
        self.assertEqual(self.scenario.state, ScenarioState.PASSED)
        self.assertTrue(outcome.passed)
        self.assertEqual(outcome.message, "fine")
        self.assertEqual(outcome.operation, OperationKind.BIND)
        self.assertIs(self.scenario.outcome, outcome)

    def test_cannot_finish_twice(self):
        self.scenario.fail("no")
        self.assertEqual(self.scenario.state, ScenarioState.FAILED)
        with self.assertRaises(RuntimeError):
            self.scenario.succeed("yes")


class TestScenario_expect_success(unittest.TestCase):

    def test_success_passes(self):
        outcome = expect_success("A", OperationKind.ADD, succeed, message="added")
        self.assertTrue(outcome.passed)
        self.assertEqual(outcome.message, "added")
        self.assertIsNone(outcome.error)

    def test_message_can_use_result(self):
        outcome = expect_success(
            "A", OperationKind.ADD, succeed, message=lambda result: f"got {result}"
        )
        self.assertEqual(outcome.message, "got result")

    def test_error_fails_with_error_attached(self):
        outcome = expect_success("A", OperationKind.ADD, refuse(), failure="Failed to add")
        self.assertFalse(outcome.passed)
        self.assertTrue(outcome.message.startswith("Failed to add: "))
        self.assertEqual(outcome.error.code, ResultCode.NO_SUCH_OBJECT)

    def test_verify_can_fail_a_success(self):
        outcome = expect_success(
            "A", OperationKind.ADD, succeed, verify=lambda result: "wrong result"
        )
        self.assertFalse(outcome.passed)
        self.assertEqual(outcome.message, "wrong result")


class TestScenario_expect_rejection(unittest.TestCase):

    def test_success_of_negative_scenario_fails(self):
        outcome = expect_rejection(
            "N", OperationKind.DELETE, succeed, expected=ResultCode.NO_SUCH_OBJECT
        )
        self.assertFalse(outcome.passed)
        self.assertEqual(outcome.message, UNEXPECTED_SUCCESS)

    def test_expected_code_passes(self):
        outcome = expect_rejection(
            "N",
            OperationKind.DELETE,
            refuse(),
            expected=ResultCode.NO_SUCH_OBJECT,
            message="Correctly rejected",
        )
        self.assertTrue(outcome.passed)
        self.assertEqual(outcome.message, "Correctly rejected")
        self.assertEqual(outcome.error.code, ResultCode.NO_SUCH_OBJECT)

    def test_other_code_still_passes_but_says_so(self):
        outcome = expect_rejection(
            "N",
            OperationKind.DELETE,
            refuse(ResultCode.UNWILLING_TO_PERFORM),
            expected=ResultCode.NO_SUCH_OBJECT,
            message="Correctly rejected",
        )
        self.assertTrue(outcome.passed)
        self.assertIn("got unwilling to perform", outcome.message)
        self.assertIn("expected no such object", outcome.message)


class TestScenario_accept_either(unittest.TestCase):

    def test_success_passes(self):
        outcome = accept_either(
            "E", OperationKind.BIND, succeed, accepted="allowed", rejected="refused"
        )
        self.assertTrue(outcome.passed)
        self.assertEqual(outcome.message, "allowed")

    def test_error_passes(self):
        outcome = accept_either(
            "E", OperationKind.BIND, refuse(), accepted="allowed", rejected="refused"
        )
        self.assertTrue(outcome.passed)
        self.assertEqual(outcome.message, "refused")
        self.assertIsNotNone(outcome.error)

    def test_verify_can_fail_a_success(self):
        outcome = accept_either(
            "E",
            OperationKind.COMPARE,
            lambda: True,
            accepted="false",
            rejected="refused",
            verify=lambda matched: "matched" if matched else None,
        )
        self.assertFalse(outcome.passed)
        self.assertEqual(outcome.message, "matched")
