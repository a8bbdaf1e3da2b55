from __future__ import annotations

import logging

from ..connection import Directory
from ..logging import get_logger, trace
from ..results import OperationKind, TestOutcome
from ..types import Scope, SearchPage
from .base import Scenario

#: RFC 4511 "no attributes"
NO_ATTRIBUTES = ["1.1"]


def _search(
    conn: Directory,
    logger: logging.Logger,
    name: str,
    base: str,
    scope: Scope,
    filterstr: str,
    attributes: list[str],
    describe: str,
) -> TestOutcome:
    def message(page: SearchPage) -> str:
        for dn, _ in page.entries[:5]:
            trace(logger, "search.entry dn=%s", dn)
        return f"Found {len(page.entries)} {describe}"

    return Scenario(name, OperationKind.SEARCH, logger=logger).expect_success(
        lambda: conn.search(base, scope, filterstr, attributes),
        message=message,
        failure="Search failed",
    )


def search_base(conn: Directory, test_root: str, logger: logging.Logger) -> TestOutcome:
    return _search(
        conn,
        logger,
        "Search with Base Scope Test",
        test_root,
        Scope.BASE,
        "(objectClass=*)",
        ["*"],
        "entries (base scope)",
    )


def search_onelevel(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    return _search(
        conn,
        logger,
        "Search with One Level Scope Test",
        test_root,
        Scope.ONELEVEL,
        "(objectClass=*)",
        ["cn", "ou", "objectClass"],
        "entries (one level scope)",
    )


def search_subtree(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    return _search(
        conn,
        logger,
        "Search with Subtree Scope Test",
        test_root,
        Scope.SUBTREE,
        "(objectClass=*)",
        NO_ATTRIBUTES,
        "entries (subtree scope)",
    )


def search_filter(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    return _search(
        conn,
        logger,
        "Search with Filter Test",
        test_root,
        Scope.SUBTREE,
        "(objectClass=inetOrgPerson)",
        ["cn", "mail", "sn"],
        "inetOrgPerson entries with filter",
    )


def search_attributes(
    conn: Directory, test_root: str, logger: logging.Logger
) -> TestOutcome:
    """
    Ask for ``cn`` and ``mail`` of the test user.  A server that sends back
    attributes we did not ask for is noted in the log and the message, but
    the scenario still passes.
    """
    requested = ["cn", "mail"]

    def message(page: SearchPage) -> str:
        if not page.entries:
            return "No entries found matching filter (expected if test user doesn't exist yet)"
        dn, attrs = page.entries[0]
        wanted = {name.lower() for name in requested}
        extra = [name for name in attrs if name.lower() not in wanted]
        for name in extra:
            logger.debug("search.unexpected_attribute dn=%s attribute=%s", dn, name)
        filtered = "true" if not extra else "false"
        return f"Found entries with attribute selection (attributes filtered: {filtered})"

    return Scenario(
        "Search with Attribute Selection Test", OperationKind.SEARCH, logger=logger
    ).expect_success(
        lambda: conn.search(test_root, Scope.SUBTREE, "(cn=testuser)", requested),
        message=message,
        failure="Search failed",
    )


def search_paged(
    conn: Directory, base_dn: str, page_size: int, logger: logging.Logger
) -> TestOutcome:
    """
    Walk a subtree search of ``base_dn`` page by page, following the paging
    cookie until the server says there are no more pages.
    """

    def walk() -> tuple[int, int]:
        total = pages = 0
        cookie = b""
        while True:
            page = conn.search(
                base_dn,
                Scope.SUBTREE,
                "(objectClass=*)",
                NO_ATTRIBUTES,
                page_size=page_size,
                cookie=cookie,
            )
            pages += 1
            total += len(page.entries)
            trace(logger, "search.page page=%d entries=%d", pages, len(page.entries))
            if not page.has_more:
                return total, pages
            cookie = page.cookie

    logger.debug("search.paged base=%s page_size=%d", base_dn, page_size)
    return Scenario(
        "Search with Paging Test", OperationKind.SEARCH, logger=logger
    ).expect_success(
        walk,
        message=lambda result: (
            f"Paged search completed: {result[0]} entries across {result[1]} pages"
        ),
        failure="Paged search failed",
    )


def run(
    conn: Directory,
    test_root: str,
    base_dn: str,
    page_size: int = 10,
    logger: logging.Logger | None = None,
) -> list[TestOutcome]:
    """
    Run the search scenarios.  The filter and attribute selection scenarios
    expect the add suite's ``testuser`` to exist; the paging scenario
    searches all of ``base_dn`` so that there is something to page through.
    """
    logger = logger or get_logger("suites.search")
    logger.info("suite.start suite=search test_root=%s", test_root)
    results = [
        search_base(conn, test_root, logger),
        search_onelevel(conn, test_root, logger),
        search_subtree(conn, test_root, logger),
        search_filter(conn, test_root, logger),
        search_attributes(conn, test_root, logger),
        search_paged(conn, base_dn, page_size, logger),
    ]
    logger.info("suite.done suite=search total=%d", len(results))
    return results
