"""
Abandon and unbind scenarios.

The background search scenario races a search running in a worker thread
against a timer.  It does not send an abandon for that search: the search
runs to completion inside python-ldap's synchronous call, so there is no
message id to abandon while it is in flight.  Whichever of the two finishes
first, the scenario passes and says which one it was.  A search that
outlasts the timeout keeps its worker thread until python-ldap returns,
and the interpreter joins that thread at exit, so a hung search can delay
process exit by up to the network timeout.  The message id
scenario covers the protocol operation itself by starting an asynchronous
search and abandoning it.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait

from ..connection import Directory
from ..exceptions import DirectoryError
from ..logging import get_logger, trace
from ..results import OperationKind, TestOutcome
from ..types import Scope
from .base import Scenario

#: Seconds to wait for the background search
SEARCH_TIMEOUT = 5.0
#: Seconds to give the background search to get going
SEARCH_HEAD_START = 0.01


def abandon_background_search(
    conn: Directory, base_dn: str, logger: logging.Logger, timeout: float = SEARCH_TIMEOUT
) -> TestOutcome:
    scenario = Scenario(
        "Abandon - Cancel Search Operation Test", OperationKind.ABANDON, logger=logger
    ).start()
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="abandon-search")
    try:
        future = executor.submit(
            conn.search, base_dn, Scope.SUBTREE, "(objectClass=*)", ["*"]
        )
        time.sleep(SEARCH_HEAD_START)
        trace(logger, "abandon.attempt base=%s", base_dn)
        done, _ = wait([future], timeout=timeout)
    finally:
        # Never block on a search that is still running
        executor.shutdown(wait=False)
    if not done:
        return scenario.succeed("Abandon test completed (search timed out as expected)")
    error = future.exception()
    if error is not None:
        logger.debug("abandon.search.failed error=%s", error)
    else:
        logger.debug("abandon.search.done entries=%d", len(future.result().entries))
    logger.warning(
        "abandon.limitation the background search cannot be abandoned while in flight"
    )
    return scenario.succeed(
        "Abandon operation test completed (search finished before it could be "
        "abandoned; in-flight abandon is not supported for synchronous searches)"
    )


def abandon_by_message_id(
    conn: Directory, base_dn: str, logger: logging.Logger
) -> TestOutcome:
    """
    Start an asynchronous search and immediately abandon it by message id.
    The server sends no response to an abandon, so all we can check is that
    it was sent.
    """

    def send() -> int:
        msgid = conn.start_search(base_dn, Scope.SUBTREE, "(objectClass=*)", ["*"])
        conn.abandon(msgid)
        return msgid

    return Scenario(
        "Abandon - Abandon by Message ID Test", OperationKind.ABANDON, logger=logger
    ).expect_success(
        send,
        message=lambda msgid: f"Sent abandon for search with message id {msgid}",
        failure="Abandon failed",
    )


def unbind(conn: Directory, logger: logging.Logger) -> TestOutcome:
    """
    Unbind a spare connection.  We never unbind ``conn`` itself: the runner
    still needs it for cleanup.
    """
    scenario = Scenario("Unbind Operation Test", OperationKind.UNBIND, logger=logger).start()
    spare = conn.spawn()
    try:
        try:
            spare.open()
        except DirectoryError as exc:
            return scenario.fail("Failed to open a connection to unbind", error=exc)
        trace(logger, "unbind.request uri=%s", spare.uri)
        return scenario.expect_success(
            spare.unbind,
            message="Successfully sent unbind request and closed connection",
            failure="Unbind failed",
        )
    finally:
        spare.close()


def run(
    conn: Directory,
    base_dn: str,
    timeout: float = SEARCH_TIMEOUT,
    logger: logging.Logger | None = None,
) -> list[TestOutcome]:
    logger = logger or get_logger("suites.abandon")
    logger.info("suite.start suite=abandon base=%s", base_dn)
    results = [
        abandon_background_search(conn, base_dn, logger, timeout=timeout),
        abandon_by_message_id(conn, base_dn, logger),
        unbind(conn, logger),
    ]
    logger.info("suite.done suite=abandon total=%d", len(results))
    return results
