from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from .base import Scenario


def compare_match(conn: Directory, test_root: str, logger: logging.Logger) -> TestOutcome:
    attribute, value = "cn", "testuser"
    return Scenario(
        "Compare - Matching Value Test", OperationKind.COMPARE, logger=logger
    ).expect_success(
        lambda: conn.compare(f"cn=testuser,{test_root}", attribute, value),
        message=f"Attribute {attribute} matches value '{value}' (as expected)",
        failure="Compare operation failed",
        verify=lambda matched: (
            None
            if matched
            else f"Attribute {attribute} does not match value '{value}' (unexpected)"
        ),
    )


def compare_mismatch(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    attribute, value = "cn", "wrongvalue"
    return Scenario(
        "Compare - Non-Matching Value Test", OperationKind.COMPARE, logger=logger
    ).expect_success(
        lambda: conn.compare(f"cn=testuser,{test_root}", attribute, value),
        message=f"Attribute {attribute} does not match value '{value}' (as expected)",
        failure="Compare operation failed",
        verify=lambda matched: (
            f"Attribute {attribute} unexpectedly matches value '{value}'"
            if matched
            else None
        ),
    )


def compare_missing_entry(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    return Scenario(
        "Compare - Non-Existent Entry Test (Negative)",
        OperationKind.COMPARE,
        logger=logger,
    ).expect_rejection(
        lambda: conn.compare(f"cn=nonexistent,{test_root}", "cn", "nonexistent"),
        expected=ResultCode.NO_SUCH_OBJECT,
        message="Correctly returned error for non-existent entry",
        unexpected="ERROR: Compare succeeded on non-existent entry",
    )


def compare_missing_attribute(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    """
    Servers may either refuse to compare an attribute the entry does not
    have, or say the comparison is false.  Either is fine; saying it is true
    is not.
    """
    return Scenario(
        "Compare - Non-Existent Attribute Test (Negative)",
        OperationKind.COMPARE,
        logger=logger,
    ).accept_either(
        lambda: conn.compare(f"cn=testuser,{test_root}", "nonExistentAttribute", "value"),
        accepted="Correctly returned false for non-existent attribute",
        rejected="Correctly returned error for non-existent attribute",
        verify=lambda matched: (
            "ERROR: Compare returned true for non-existent attribute" if matched else None
        ),
    )


def run(
    conn: Directory, test_root: str, logger: logging.Logger | None = None
) -> list[TestOutcome]:
    """
    Run the compare scenarios against the add suite's ``testuser``.
    """
    logger = logger or get_logger("suites.compare")
    logger.info("suite.start suite=compare test_root=%s", test_root)
    results = [
        compare_match(conn, test_root, logger),
        compare_mismatch(conn, test_root, logger),
        compare_missing_entry(conn, test_root, logger),
        compare_missing_attribute(conn, test_root, logger),
    ]
    logger.info("suite.done suite=compare total=%d", len(results))
    return results
