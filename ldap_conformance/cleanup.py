from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import ldap.dn
from ldap_filter import Filter

from .connection import Directory
from .exceptions import DirectoryError, ResultCode
from .logging import get_logger
from .tracker import EntryKind, Tracker
from .types import Scope

#: The timestamp part of a test root's name
TEST_ROOT_TIME_FORMAT = "%Y%m%d-%H%M%S"

cleanup_logger = get_logger("cleanup")


@dataclass
class CleanupResult:
    """
    What happened when we tried to delete our entries.
    """

    #: DNs we deleted
    deleted: list[str] = field(default_factory=list)
    #: DNs we could not delete, with the reason
    failed: list[tuple[str, DirectoryError]] = field(default_factory=list)
    #: DNs that were already gone
    missing: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.deleted) + len(self.failed) + len(self.missing)

    @property
    def errors(self) -> int:
        """
        How many deletes returned an error, whether the entry was already
        gone or could not be deleted.
        """
        return len(self.failed) + len(self.missing)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: CleanupResult) -> None:
        self.deleted.extend(other.deleted)
        self.failed.extend(other.failed)
        self.missing.extend(other.missing)


@dataclass(frozen=True)
class DiscoveredRoot:
    """
    A test root container found in the directory.
    """

    dn: str
    created_at: datetime

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(timezone.utc)) - self.created_at


def make_test_root_dn(prefix: str, base_dn: str, when: datetime | None = None) -> str:
    """
    Build the DN of the test root container for a run started at ``when``
    (default: now), e.g. ``ou=ldap-test-20250101-120000,dc=example,dc=com``.
    Names have one second resolution; two runs started in the same second
    against the same base DN collide.
    """
    when = when or datetime.now(timezone.utc)
    return f"ou={prefix}-{when.strftime(TEST_ROOT_TIME_FORMAT)},{base_dn}"


def parse_test_root_time(ou: str, prefix: str) -> datetime | None:
    """
    Recover the creation time from the ``ou`` of a test root.

    Returns:
        The creation time (UTC), or ``None`` if ``ou`` is not a test root name.

    """
    head = f"{prefix}-"
    if not ou.startswith(head):
        return None
    try:
        when = datetime.strptime(ou[len(head) :], TEST_ROOT_TIME_FORMAT)
    except ValueError:
        return None
    return when.replace(tzinfo=timezone.utc)


def _delete(
    conn: Directory, dn: str, result: CleanupResult, logger: logging.Logger
) -> None:
    try:
        conn.delete(dn)
    except DirectoryError as exc:
        if exc.code is ResultCode.NO_SUCH_OBJECT:
            logger.debug("cleanup.delete.missing dn=%s", dn)
            result.missing.append(dn)
        else:
            logger.warning("cleanup.delete.failed dn=%s error=%s", dn, exc)
            result.failed.append((dn, exc))
    else:
        logger.debug("cleanup.delete dn=%s", dn)
        result.deleted.append(dn)


def perform_cleanup(
    conn: Directory, tracker: Tracker, logger: logging.Logger | None = None
) -> CleanupResult:
    """
    Delete every entry in ``tracker``, newest first.  A failure to delete
    one entry is recorded and we carry on with the rest.  Each DN is
    deleted at most once, even if it was tracked more than once.  The
    tracker itself is not changed.

    Args:
        conn: a bound connection to the directory
        tracker: the entries to delete

    Keyword Args:
        logger: the logger to use

    Returns:
        What was deleted, what could not be, and what was already gone.

    """
    logger = logger or cleanup_logger
    result = CleanupResult()
    entries = tracker.entries_reversed()
    logger.info("cleanup.start entries=%d", len(entries))
    seen: set[str] = set()
    for entry in entries:
        key = entry.dn.lower()
        if key in seen:
            continue
        seen.add(key)
        _delete(conn, entry.dn, result, logger)
    logger.info(
        "cleanup.done deleted=%d failed=%d missing=%d",
        len(result.deleted),
        len(result.failed),
        len(result.missing),
    )
    return result


def roots_filter(prefix: str) -> str:
    return Filter.AND(
        [
            Filter.attribute("objectClass").equal_to("organizationalUnit"),
            Filter.attribute("ou").starts_with(f"{prefix}-"),
        ]
    ).to_string()


def find_test_roots(
    conn: Directory,
    base_dn: str,
    prefix: str,
    logger: logging.Logger | None = None,
) -> list[DiscoveredRoot]:
    """
    Find the test root containers directly under ``base_dn`` whose names we
    can date.

    Raises:
        DirectoryError: the search failed

    Returns:
        The test roots, oldest first.

    """
    logger = logger or cleanup_logger
    page = conn.search(base_dn, Scope.ONELEVEL, roots_filter(prefix), ["ou"])
    roots: list[DiscoveredRoot] = []
    for dn, attrs in page.entries:
        created_at = None
        for value in attrs.get("ou", []):
            created_at = parse_test_root_time(value.decode("utf-8"), prefix)
            if created_at:
                break
        if created_at is None:
            logger.debug("cleanup.find.skipped dn=%s", dn)
            continue
        roots.append(DiscoveredRoot(dn=dn, created_at=created_at))
    roots.sort(key=lambda root: root.created_at)
    logger.info("cleanup.find base=%s prefix=%s found=%d", base_dn, prefix, len(roots))
    return roots


def delete_subtree(
    conn: Directory, dn: str, logger: logging.Logger | None = None
) -> CleanupResult:
    """
    Delete ``dn`` and everything under it, deepest entries first.

    Raises:
        DirectoryError: we could not list the subtree

    """
    logger = logger or cleanup_logger
    page = conn.search(dn, Scope.SUBTREE, "(objectClass=*)", ["1.1"])
    dns = [entry_dn for entry_dn, _ in page.entries]
    dns.sort(key=lambda entry_dn: len(ldap.dn.explode_dn(entry_dn)), reverse=True)
    result = CleanupResult()
    for entry_dn in dns:
        _delete(conn, entry_dn, result, logger)
    return result


def cleanup_older_than(
    conn: Directory,
    base_dn: str,
    prefix: str,
    age: timedelta,
    logger: logging.Logger | None = None,
) -> CleanupResult:
    """
    Remove the test roots (and their contents) left behind by runs that
    started more than ``age`` ago.

    Args:
        conn: a bound connection to the directory
        base_dn: where our test roots live
        prefix: the prefix of our test root names
        age: how old a test root must be before we remove it

    Keyword Args:
        logger: the logger to use

    Raises:
        DirectoryError: we could not search for test roots

    """
    logger = logger or cleanup_logger
    tracker = Tracker(logger=logger)
    for root in find_test_roots(conn, base_dn, prefix, logger=logger):
        tracker.track(root.dn, EntryKind.CONTAINER, created_at=root.created_at)
    result = CleanupResult()
    old = tracker.entries_older_than(age)
    logger.info("cleanup.retention age=%s roots=%d old=%d", age, tracker.count(), len(old))
    for entry in old:
        try:
            result.merge(delete_subtree(conn, entry.dn, logger=logger))
        except DirectoryError as exc:
            if exc.code is ResultCode.NO_SUCH_OBJECT:
                result.missing.append(entry.dn)
            else:
                logger.warning("cleanup.subtree.failed dn=%s error=%s", entry.dn, exc)
                result.failed.append((entry.dn, exc))
    return result


def list_test_data(
    conn: Directory,
    base_dn: str,
    prefix: str,
    logger: logging.Logger | None = None,
) -> list[tuple[DiscoveredRoot, int]]:
    """
    List the test roots under ``base_dn`` and how many entries each holds
    (including itself).

    Raises:
        DirectoryError: the search for test roots failed

    """
    logger = logger or cleanup_logger
    listing: list[tuple[DiscoveredRoot, int]] = []
    for root in find_test_roots(conn, base_dn, prefix, logger=logger):
        try:
            page = conn.search(root.dn, Scope.SUBTREE, "(objectClass=*)", ["1.1"])
        except DirectoryError as exc:
            logger.warning("cleanup.list.failed dn=%s error=%s", root.dn, exc)
            listing.append((root, 0))
            continue
        listing.append((root, len(page.entries)))
    return listing
