from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from ..tracker import EntryKind, Tracker
from ..types import Attributes
from .base import Scenario

#: The password of the test user created by :py:func:`add_user`
TEST_USER_PASSWORD = "TestPassword123!"


def user_attributes(cn: str, sn: str, description: str = "") -> Attributes:
    """
    The attributes of a minimal ``inetOrgPerson``.
    """
    attributes: Attributes = {
        "objectClass": ["inetOrgPerson"],
        "cn": [cn],
        "sn": [sn],
    }
    if description:
        attributes["description"] = [description]
    return attributes


def add_entry(
    conn: Directory,
    tracker: Tracker,
    scenario: Scenario,
    dn: str,
    attributes: Attributes,
    kind: EntryKind,
    message: str,
    failure: str,
) -> TestOutcome:
    """
    Add ``dn`` as a positive scenario, tracking it if it was created.

    If the add failed in a way that leaves us unsure whether the server
    applied it (a timeout, a dropped connection) we track it anyway, so that
    cleanup has a chance to remove it.
    """
    scenario.logger.debug("add.request dn=%s kind=%s", dn, kind.value)
    outcome = scenario.expect_success(
        lambda: conn.add(dn, attributes), message=message, failure=failure
    )
    if outcome.passed:
        tracker.track(dn, kind)
    elif outcome.error is not None and outcome.error.code.is_ambiguous:
        scenario.logger.warning(
            "add.ambiguous dn=%s code=%s", dn, outcome.error.code.name
        )
        tracker.track(dn, kind)
    return outcome


def add_ou(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    dn = f"ou=test-ou,{test_root}"
    return add_entry(
        conn,
        tracker,
        Scenario("Add OU Test", OperationKind.ADD, logger=logger),
        dn,
        {
            "objectClass": ["organizationalUnit"],
            "ou": ["test-ou"],
            "description": ["Test organizational unit created by automated tests"],
        },
        EntryKind.CONTAINER,
        message=f"Successfully added OU: {dn}",
        failure="Failed to add OU",
    )


def add_user(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    dn = f"cn=testuser,{test_root}"
    attributes = user_attributes(
        "testuser", "User", description="Test user created by automated tests"
    )
    attributes.update(
        {
            "givenName": ["Test"],
            "mail": ["testuser@example.com"],
            "userPassword": [TEST_USER_PASSWORD],
        }
    )
    return add_entry(
        conn,
        tracker,
        Scenario("Add User Test", OperationKind.ADD, logger=logger),
        dn,
        attributes,
        EntryKind.PRINCIPAL,
        message=f"Successfully added user: {dn}",
        failure="Failed to add user",
    )


def add_group(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    dn = f"cn=testgroup,{test_root}"
    return add_entry(
        conn,
        tracker,
        Scenario("Add Group Test", OperationKind.ADD, logger=logger),
        dn,
        {
            "objectClass": ["groupOfNames"],
            "cn": ["testgroup"],
            "member": [f"cn=testuser,{test_root}"],
            "description": ["Test group created by automated tests"],
        },
        EntryKind.GROUP,
        message=f"Successfully added group: {dn}",
        failure="Failed to add group",
    )


def add_duplicate(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    dn = f"cn=testuser,{test_root}"
    return Scenario(
        "Add Duplicate Entry Test (Negative)", OperationKind.ADD, logger=logger
    ).expect_rejection(
        lambda: conn.add(dn, user_attributes("testuser", "User")),
        expected=ResultCode.ALREADY_EXISTS,
        message="Correctly rejected duplicate entry",
        unexpected="ERROR: Duplicate entry was accepted",
    )


def add_missing_attributes(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    dn = f"cn=incomplete-user,{test_root}"
    # inetOrgPerson requires sn
    attributes: Attributes = {"objectClass": ["inetOrgPerson"], "cn": ["incomplete-user"]}
    outcome = Scenario(
        "Add Entry with Missing Required Attributes Test (Negative)",
        OperationKind.ADD,
        logger=logger,
    ).expect_rejection(
        lambda: conn.add(dn, attributes),
        expected=ResultCode.OBJECT_CLASS_VIOLATION,
        message="Correctly rejected entry with missing required attributes",
        unexpected="ERROR: Entry with missing required attributes was accepted",
    )
    if not outcome.passed:
        # The server created it, so it needs cleaning up
        tracker.track(dn, EntryKind.PRINCIPAL)
    return outcome


def run(
    conn: Directory,
    test_root: str,
    tracker: Tracker,
    logger: logging.Logger | None = None,
) -> list[TestOutcome]:
    """
    Run the add scenarios.  The group names the user as a member, so the
    user must be added first.
    """
    logger = logger or get_logger("suites.add")
    logger.info("suite.start suite=add test_root=%s", test_root)
    results = [
        add_ou(conn, test_root, tracker, logger),
        add_user(conn, test_root, tracker, logger),
        add_group(conn, test_root, tracker, logger),
        add_duplicate(conn, test_root, logger),
        add_missing_attributes(conn, test_root, tracker, logger),
    ]
    logger.info("suite.done suite=add total=%d", len(results))
    return results
