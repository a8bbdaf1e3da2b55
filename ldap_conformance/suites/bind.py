from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import DirectoryError, ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from .base import Scenario, accept_either, expect_success

INVALID_PASSWORD = "INVALID_PASSWORD_12345"


def valid_bind(conn: Directory, logger: logging.Logger) -> TestOutcome:
    return expect_success(
        "Valid Bind Test",
        OperationKind.BIND,
        conn.bind,
        logger=logger,
        message="Successfully authenticated with valid credentials",
        failure="Failed to bind with valid credentials",
    )


def invalid_bind(conn: Directory, logger: logging.Logger) -> TestOutcome:
    """
    Bind as our configured DN with a wrong password.  This uses a spare
    connection so that the failed bind does not leave the live connection
    unauthenticated.
    """
    scenario = Scenario("Invalid Bind Test", OperationKind.BIND, logger=logger).start()
    spare = conn.spawn()
    try:
        try:
            spare.connect()
        except DirectoryError as exc:
            return scenario.fail("Failed to connect to server for test", error=exc)
        logger.debug("bind.invalid dn=%s", conn.bind_dn)
        return scenario.expect_rejection(
            lambda: spare.bind(conn.bind_dn, INVALID_PASSWORD),
            expected=ResultCode.INVALID_CREDENTIALS,
            message="Correctly rejected invalid credentials",
            unexpected="ERROR: Invalid credentials were accepted (security issue!)",
        )
    finally:
        spare.close()


def anonymous_bind(conn: Directory, logger: logging.Logger) -> TestOutcome:
    scenario = Scenario("Anonymous Bind Test", OperationKind.BIND, logger=logger).start()
    spare = conn.spawn()
    try:
        try:
            spare.connect()
        except DirectoryError as exc:
            return scenario.fail("Failed to connect to server for test", error=exc)
        return scenario.accept_either(
            lambda: spare.bind("", ""),
            accepted="Anonymous bind permitted on this server",
            rejected="Anonymous bind not permitted (as expected)",
        )
    finally:
        spare.close()


def run(conn: Directory, logger: logging.Logger | None = None) -> list[TestOutcome]:
    """
    Run the bind scenarios: a valid bind on the live connection, then an
    invalid and an anonymous bind, each on a spare connection.
    """
    logger = logger or get_logger("suites.bind")
    logger.info("suite.start suite=bind")
    results = [
        valid_bind(conn, logger),
        invalid_bind(conn, logger),
        anonymous_bind(conn, logger),
    ]
    logger.info("suite.done suite=bind total=%d", len(results))
    return results
