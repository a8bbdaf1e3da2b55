from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from ..types import ModKind, Modification
from .base import Scenario


def _modify(
    conn: Directory,
    logger: logging.Logger,
    name: str,
    dn: str,
    changes: list[Modification],
    message: str,
    failure: str,
) -> TestOutcome:
    return Scenario(name, OperationKind.MODIFY, logger=logger).expect_success(
        lambda: conn.modify(dn, changes), message=message, failure=failure
    )


def run(
    conn: Directory, test_root: str, logger: logging.Logger | None = None
) -> list[TestOutcome]:
    """
    Run the modify scenarios against the add suite's ``testuser``.  They
    build on each other: ``telephoneNumber`` is added, then deleted again.
    """
    logger = logger or get_logger("suites.modify")
    logger.info("suite.start suite=modify test_root=%s", test_root)
    user = f"cn=testuser,{test_root}"
    results = [
        _modify(
            conn,
            logger,
            "Modify - Add Attribute Test",
            user,
            [Modification(ModKind.ADD, "telephoneNumber", ["+1-555-0100"])],
            "Successfully added telephoneNumber attribute",
            "Failed to add attribute",
        ),
        _modify(
            conn,
            logger,
            "Modify - Replace Attribute Test",
            user,
            [Modification(ModKind.REPLACE, "mail", ["newemail@example.com"])],
            "Successfully replaced mail attribute",
            "Failed to replace attribute",
        ),
        _modify(
            conn,
            logger,
            "Modify - Delete Attribute Test",
            user,
            [Modification(ModKind.DELETE, "telephoneNumber")],
            "Successfully deleted telephoneNumber attribute",
            "Failed to delete attribute",
        ),
        _modify(
            conn,
            logger,
            "Modify - Multiple Modifications Test",
            user,
            [
                Modification(ModKind.ADD, "mobile", ["+1-555-0200"]),
                Modification(
                    ModKind.REPLACE,
                    "description",
                    ["Modified test user with multiple changes"],
                ),
            ],
            "Successfully applied multiple modifications",
            "Failed to apply multiple modifications",
        ),
        Scenario(
            "Modify - Non-Existent Entry Test (Negative)",
            OperationKind.MODIFY,
            logger=logger,
        ).expect_rejection(
            lambda: conn.modify(
                f"cn=nonexistent,{test_root}",
                [Modification(ModKind.REPLACE, "description", ["This should fail"])],
            ),
            expected=ResultCode.NO_SUCH_OBJECT,
            message="Correctly rejected modification of non-existent entry",
            unexpected="ERROR: Modification of non-existent entry succeeded",
        ),
    ]
    logger.info("suite.done suite=modify total=%d", len(results))
    return results
