from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import DirectoryError, ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from ..tracker import EntryKind, Tracker
from .add import user_attributes
from .base import Scenario


def delete_leaf(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    """
    Create a user and delete it again.  The user is only tracked if the
    delete fails, because only then does it still exist, or if the add
    failed in a way that may still have created it.
    """
    scenario = Scenario(
        "Delete - Leaf Entry Test", OperationKind.DELETE, logger=logger
    ).start()
    dn = f"cn=delete-test-user,{test_root}"
    try:
        conn.add(dn, user_attributes("delete-test-user", "DeleteTest"))
    except DirectoryError as exc:
        logger.error("delete.setup.failed dn=%s error=%s", dn, exc)
        if exc.code.is_ambiguous:
            tracker.track(dn, EntryKind.PRINCIPAL)
        return scenario.fail("Failed to create test entry", error=exc)
    logger.debug("delete.setup dn=%s", dn)
    outcome = scenario.expect_success(
        lambda: conn.delete(dn),
        message=f"Successfully deleted entry: {dn}",
        failure="Failed to delete entry",
    )
    if not outcome.passed:
        tracker.track(dn, EntryKind.PRINCIPAL)
    return outcome


def delete_non_leaf(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    """
    Try to delete the test root, which has children by now.
    """
    return Scenario(
        "Delete - Non-Leaf Entry Test (Negative)", OperationKind.DELETE, logger=logger
    ).expect_rejection(
        lambda: conn.delete(test_root),
        expected=ResultCode.NOT_ALLOWED_ON_NONLEAF,
        message="Correctly rejected deletion of non-leaf entry",
        unexpected="ERROR: Deletion of non-leaf entry succeeded",
    )


def delete_missing(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    return Scenario(
        "Delete - Non-Existent Entry Test (Negative)",
        OperationKind.DELETE,
        logger=logger,
    ).expect_rejection(
        lambda: conn.delete(f"cn=nonexistent-delete-test,{test_root}"),
        expected=ResultCode.NO_SUCH_OBJECT,
        message="Correctly rejected deletion of non-existent entry",
        unexpected="ERROR: Deletion of non-existent entry succeeded",
    )


def run(
    conn: Directory,
    test_root: str,
    tracker: Tracker,
    logger: logging.Logger | None = None,
) -> list[TestOutcome]:
    logger = logger or get_logger("suites.delete")
    logger.info("suite.start suite=delete test_root=%s", test_root)
    results = [
        delete_leaf(conn, test_root, tracker, logger),
        delete_non_leaf(conn, test_root, logger),
        delete_missing(conn, test_root, logger),
    ]
    logger.info("suite.done suite=delete total=%d", len(results))
    return results
