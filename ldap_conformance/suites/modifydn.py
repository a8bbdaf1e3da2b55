from __future__ import annotations

import logging

from ..connection import Directory
from ..exceptions import DirectoryError, ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome
from ..tracker import EntryKind, Tracker
from .add import user_attributes
from .base import Scenario


def _create_user(
    conn: Directory, tracker: Tracker, scenario: Scenario, cn: str, sn: str, parent: str
) -> tuple[str, TestOutcome | None]:
    """
    Create the user a rename scenario works on.

    If the add failed in a way that may still have created the user, the
    user is tracked anyway.

    Returns:
        The DN of the user, and a failed outcome for ``scenario`` if the user
        could not be created.

    """
    dn = f"cn={cn},{parent}"
    try:
        conn.add(dn, user_attributes(cn, sn))
    except DirectoryError as exc:
        scenario.logger.error("modifydn.setup.failed dn=%s error=%s", dn, exc)
        if exc.code.is_ambiguous:
            tracker.track(dn, EntryKind.PRINCIPAL)
        return dn, scenario.fail("Failed to create test entry", error=exc)
    tracker.track(dn, EntryKind.PRINCIPAL)
    return dn, None


def _rename(
    conn: Directory,
    tracker: Tracker,
    scenario: Scenario,
    old_dn: str,
    new_rdn: str,
    new_superior: str | None,
    parent: str,
    verb: str,
    failure: str,
) -> TestOutcome:
    new_dn = f"{new_rdn},{new_superior or parent}"
    outcome = scenario.expect_success(
        lambda: conn.rename(old_dn, new_rdn, delete_old_rdn=True, new_superior=new_superior),
        message=f"Successfully {verb} entry from {old_dn} to {new_dn}",
        failure=failure,
    )
    if outcome.passed:
        # The old name is gone; cleanup needs the new one
        tracker.track(new_dn, EntryKind.PRINCIPAL)
    elif outcome.error is not None and outcome.error.code.is_ambiguous:
        # Either name may exist now; the old one is already tracked
        scenario.logger.warning(
            "modifydn.ambiguous dn=%s new_dn=%s code=%s",
            old_dn,
            new_dn,
            outcome.error.code.name,
        )
        tracker.track(new_dn, EntryKind.PRINCIPAL)
    return outcome


def rename_entry(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    scenario = Scenario(
        "Modify DN - Rename Entry Test", OperationKind.MODIFY_DN, logger=logger
    ).start()
    old_dn, failed = _create_user(
        conn, tracker, scenario, "rename-test-user", "RenameTest", test_root
    )
    if failed:
        return failed
    return _rename(
        conn,
        tracker,
        scenario,
        old_dn,
        "cn=renamed-user",
        None,
        test_root,
        "renamed",
        "Failed to rename entry",
    )


def create_target_ou(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> str:
    """
    Create ``ou=target-ou`` under ``test_root`` to move entries into.  It is
    not a scenario of its own: if it can't be created we warn and carry on,
    and the move scenarios will report the problem.
    """
    dn = f"ou=target-ou,{test_root}"
    try:
        conn.add(dn, {"objectClass": ["organizationalUnit"], "ou": ["target-ou"]})
    except DirectoryError as exc:
        logger.warning(
            "modifydn.target_ou.failed dn=%s error=%s (may already exist)", dn, exc
        )
    else:
        tracker.track(dn, EntryKind.CONTAINER)
    return dn


def move_entry(
    conn: Directory,
    test_root: str,
    target: str,
    tracker: Tracker,
    logger: logging.Logger,
) -> TestOutcome:
    scenario = Scenario(
        "Modify DN - Move Entry Test", OperationKind.MODIFY_DN, logger=logger
    ).start()
    old_dn, failed = _create_user(
        conn, tracker, scenario, "move-test-user", "MoveTest", test_root
    )
    if failed:
        return failed
    # Same RDN, new parent
    return _rename(
        conn,
        tracker,
        scenario,
        old_dn,
        "cn=move-test-user",
        target,
        test_root,
        "moved",
        "Failed to move entry",
    )


def rename_and_move_entry(
    conn: Directory,
    test_root: str,
    target: str,
    tracker: Tracker,
    logger: logging.Logger,
) -> TestOutcome:
    scenario = Scenario(
        "Modify DN - Rename and Move Entry Test", OperationKind.MODIFY_DN, logger=logger
    ).start()
    old_dn, failed = _create_user(
        conn, tracker, scenario, "rename-move-user", "RenameMoveTest", test_root
    )
    if failed:
        return failed
    return _rename(
        conn,
        tracker,
        scenario,
        old_dn,
        "cn=renamed-moved-user",
        target,
        test_root,
        "renamed and moved",
        "Failed to rename and move entry",
    )


def rename_to_existing(
    conn: Directory, test_root: str, tracker: Tracker, logger: logging.Logger
) -> TestOutcome:
    """
    Rename ``testuser`` onto ``renamed-user``, which
    :py:func:`rename_entry` created.
    """
    new_dn = f"cn=renamed-user,{test_root}"
    outcome = Scenario(
        "Modify DN - Rename to Existing DN Test (Negative)",
        OperationKind.MODIFY_DN,
        logger=logger,
    ).expect_rejection(
        lambda: conn.rename(f"cn=testuser,{test_root}", "cn=renamed-user"),
        expected=ResultCode.ALREADY_EXISTS,
        message="Correctly rejected rename to existing DN",
        unexpected="ERROR: Rename to existing DN succeeded",
    )
    if not outcome.passed:
        tracker.track(new_dn, EntryKind.PRINCIPAL)
    return outcome


def run(
    conn: Directory,
    test_root: str,
    tracker: Tracker,
    logger: logging.Logger | None = None,
) -> list[TestOutcome]:
    """
    Run the modify DN scenarios.  Each scenario creates the entry it works
    on, and every name an entry ends up with is tracked for cleanup.
    """
    logger = logger or get_logger("suites.modifydn")
    logger.info("suite.start suite=modifydn test_root=%s", test_root)
    results = [rename_entry(conn, test_root, tracker, logger)]
    target = create_target_ou(conn, test_root, tracker, logger)
    results.append(move_entry(conn, test_root, target, tracker, logger))
    results.append(rename_and_move_entry(conn, test_root, target, tracker, logger))
    results.append(rename_to_existing(conn, test_root, tracker, logger))
    logger.info("suite.done suite=modifydn total=%d", len(results))
    return results
