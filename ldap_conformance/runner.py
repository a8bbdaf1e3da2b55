from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime, timezone
from enum import Enum
from types import FrameType
from typing import Any, Callable

import ldap.dn

from . import suites
from .cleanup import (
    CleanupResult,
    cleanup_older_than,
    list_test_data,
    make_test_root_dn,
    perform_cleanup,
)
from .config import Config
from .connection import Directory
from .exceptions import DirectoryError, SetupError
from .logging import get_logger
from .report import Reporter
from .results import LoopStatistics, TestOutcome, TestSuiteRun
from .tracker import EntryKind, Tracker


class RunnerPhase(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    SETTING_UP = "setting up"
    EXECUTING = "executing"
    CLEANING_UP = "cleaning up"
    REPORTING = "reporting"
    DONE = "done"
    ERROR = "error"


class Runner:
    """
    Drives a run: connect, set up a test root, run the selected suites,
    clean up, report.  In loop mode, do that over and over.

    Args:
        config: the validated configuration

    Keyword Args:
        directory_factory: called once per run to get a fresh, unconnected
            :py:class:`Directory`.  Defaults to one built from ``config``.
        tracker: the tracker to record created entries in
        reporter: where to send reports
        logger: the logger to use
        sleep: called with the number of seconds to wait between loop
            iterations.  By default we wait on our stop event, so that an
            interrupt ends the wait.

    """

    def __init__(
        self,
        config: Config,
        directory_factory: Callable[[], Directory] | None = None,
        tracker: Tracker | None = None,
        reporter: Reporter | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.config = config
        self.logger: logging.Logger = logger or get_logger("runner")
        self.directory_factory: Callable[[], Directory] = directory_factory or (
            lambda: Directory.from_config(config)
        )
        self.tracker: Tracker = tracker or Tracker()
        self.reporter: Reporter = reporter or Reporter(report_format=config.report_format)
        self.sleep = sleep
        #: Where we are in the run
        self.phase: RunnerPhase = RunnerPhase.IDLE
        #: The outcomes of the current (or most recent) run
        self.suite_run: TestSuiteRun = TestSuiteRun()
        #: What cleanup did in the most recent run, if it ran
        self.cleanup_result: CleanupResult | None = None
        #: The fatal error that ended the most recent run, if any
        self.fatal_error: SetupError | None = None
        #: Our statistics, once :py:meth:`run_loop` has been called
        self.loop_stats: LoopStatistics | None = None
        #: Set to stop loop mode at the next iteration boundary
        self.stop_event = threading.Event()

    @property
    def exit_code(self) -> int:
        """
        0 if the most recent run finished and every outcome passed, 1
        otherwise.  In loop mode only the last iteration counts.
        """
        if self.fatal_error is not None or not self.suite_run.all_passed:
            return 1
        return 0

    def run(self) -> int:
        """
        Run once, or loop if the configuration says so.

        Raises:
            SetupError: single run mode only; we could not connect or set up

        Returns:
            Our exit code.

        """
        if self.config.loop:
            return self.run_loop()
        self.run_once()
        return self.exit_code

    # Single runs

    def run_once(self) -> TestSuiteRun:
        """
        Do one complete run.  The connection is closed however the run
        ends.

        Raises:
            SetupError: we could not connect, bind, or create the test root

        Returns:
            The outcomes of the run.

        """
        self.suite_run = TestSuiteRun()
        self.suite_run.start()
        self.cleanup_result = None
        self.fatal_error = None
        self.logger.info("runner.start suites=%s", ",".join(self.config.suites))
        conn = self.directory_factory()
        try:
            self.phase = RunnerPhase.CONNECTING
            self.connect(conn)
            self.phase = RunnerPhase.SETTING_UP
            test_root = self.setup(conn)
            self.phase = RunnerPhase.EXECUTING
            self.execute(conn, test_root)
            self.phase = RunnerPhase.CLEANING_UP
            self.cleanup(conn)
            self.suite_run.finish()
            if not self.config.loop:
                self.phase = RunnerPhase.REPORTING
                self.reporter.report_run(
                    self.suite_run, self.tracker, cleanup=self.cleanup_result
                )
            self.phase = RunnerPhase.DONE
        except SetupError as exc:
            self.phase = RunnerPhase.ERROR
            self.fatal_error = exc
            self.suite_run.finish()
            self.logger.error("runner.fatal error=%s", exc)
            raise
        finally:
            conn.close()
        stats = self.suite_run.stats()
        self.logger.info(
            "runner.done total=%d passed=%d failed=%d duration=%.3fs",
            stats.total,
            stats.passed,
            stats.failed,
            stats.duration,
        )
        return self.suite_run

    def connect(self, conn: Directory) -> None:
        """
        Connect and bind.  A failed health check is only a warning.

        Raises:
            SetupError: we could not connect or bind

        """
        self.logger.info("runner.connect uri=%s", conn.uri)
        try:
            conn.connect()
            conn.bind()
        except DirectoryError as exc:
            msg = f"connection failed: {exc}"
            raise SetupError(msg) from exc
        try:
            root_dse = conn.health_check()
        except DirectoryError as exc:
            self.logger.warning("runner.health_check.failed error=%s", exc)
            return
        if root_dse is not None:
            _, attrs = root_dse
            self.logger.debug(
                "runner.health_check naming_contexts=%s versions=%s",
                [value.decode("utf-8") for value in attrs.get("namingContexts", [])],
                [value.decode("utf-8") for value in attrs.get("supportedLDAPVersion", [])],
            )

    def setup(self, conn: Directory) -> str:
        """
        Create this run's test root container under the base DN and track
        it.  In dry run mode we only work out its name.

        Raises:
            SetupError: the test root could not be created

        Returns:
            The DN of the test root.

        """
        now = datetime.now(timezone.utc)
        test_root = make_test_root_dn(self.config.test_prefix, self.config.base_dn, now)
        if self.config.dry_run:
            self.logger.info("runner.setup.dry_run test_root=%s", test_root)
            return test_root
        ou = ldap.dn.explode_dn(test_root, notypes=True)[0]
        self.logger.info("runner.setup test_root=%s", test_root)
        try:
            conn.add(
                test_root,
                {
                    "objectClass": ["organizationalUnit"],
                    "ou": [ou],
                    "description": [
                        "Test OU created by LDAP test suite at "
                        f"{now.isoformat(timespec='seconds')}"
                    ],
                },
            )
        except DirectoryError as exc:
            if exc.code.is_ambiguous:
                self.tracker.track(test_root, EntryKind.CONTAINER)
            msg = f"failed to create test root {test_root}: {exc}"
            raise SetupError(msg) from exc
        self.tracker.track(test_root, EntryKind.CONTAINER)
        return test_root

    def _suite(self, name: str, conn: Directory, test_root: str) -> list[TestOutcome]:
        logger = self.logger.getChild(name)
        config = self.config
        if name == "bind":
            return suites.bind.run(conn, logger=logger)
        if name == "add":
            return suites.add.run(conn, test_root, self.tracker, logger=logger)
        if name == "search":
            return suites.search.run(
                conn, test_root, config.base_dn, page_size=config.page_size, logger=logger
            )
        if name == "compare":
            return suites.compare.run(conn, test_root, logger=logger)
        if name == "modify":
            return suites.modify.run(conn, test_root, logger=logger)
        if name == "modifydn":
            return suites.modifydn.run(conn, test_root, self.tracker, logger=logger)
        if name == "delete":
            return suites.delete.run(conn, test_root, self.tracker, logger=logger)
        if name == "abandon":
            return suites.abandon.run(conn, config.base_dn, logger=logger)
        msg = f"unknown test suite: {name}"
        raise ValueError(msg)

    def execute(self, conn: Directory, test_root: str) -> None:
        """
        Run the selected suites in dependency order, collecting their
        outcomes.  Nothing runs in dry run mode.
        """
        if self.config.dry_run:
            self.logger.info("runner.execute.dry_run skipping test execution")
            return
        for name in self.config.suites:
            self.logger.debug("runner.suite name=%s", name)
            self.suite_run.extend(self._suite(name, conn, test_root))

    def cleanup(self, conn: Directory) -> None:
        """
        Delete what we created if cleanup was asked for, or if cleanup on
        success was asked for and everything passed.
        """
        config = self.config
        if not (config.cleanup or (config.cleanup_on_success and self.suite_run.all_passed)):
            self.logger.info("runner.cleanup.skipped preserving test data")
            return
        if config.dry_run:
            self.logger.info("runner.cleanup.dry_run would clean up test data")
            return
        self.cleanup_result = perform_cleanup(
            conn, self.tracker, logger=self.logger.getChild("cleanup")
        )
        if self.cleanup_result.failed:
            self.logger.warning(
                "runner.cleanup.incomplete failed=%d", len(self.cleanup_result.failed)
            )

    # Loop mode

    def stop(self) -> None:
        self.stop_event.set()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:  # noqa: ARG002
        self.logger.info(
            "runner.loop.interrupt signal=%s stopping after current iteration",
            signal.Signals(signum).name,
        )
        self.stop()

    def _install_signal_handlers(self) -> dict[int, Any]:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    def _wait(self, seconds: float) -> None:
        if self.sleep is not None:
            self.sleep(seconds)
        else:
            self.stop_event.wait(seconds)

    def run_loop(self) -> int:
        """
        Run over and over until :py:attr:`Config.loop_count` iterations are
        done (forever if that is 0) or we are interrupted.  An interrupt
        lets the current iteration finish.  A fatal setup error ends its
        iteration, not the loop.

        Returns:
            Our exit code, which reflects only the last iteration.

        """
        config = self.config
        stats = self.loop_stats = LoopStatistics()
        self.stop_event.clear()
        if config.loop_count:
            self.logger.info("runner.loop.start iterations=%d", config.loop_count)
        else:
            self.logger.info("runner.loop.start iterations=unlimited")
        previous = self._install_signal_handlers()
        try:
            iteration = 0
            while not self.stop_event.is_set():
                if config.loop_count and iteration >= config.loop_count:
                    self.logger.info("runner.loop.complete iterations=%d", iteration)
                    break
                iteration += 1
                self.logger.info("runner.loop.iteration iteration=%d", iteration)
                failed = False
                try:
                    self.run_once()
                except SetupError as exc:
                    failed = True
                    self.logger.error(
                        "runner.loop.iteration_failed iteration=%d error=%s", iteration, exc
                    )
                stats.record(self.suite_run, failed=failed)
                self.reporter.report_iteration(iteration, self.suite_run, stats)
                # Bookkeeping only; this iteration's cleanup policy already ran
                self.tracker.clear()
                last = bool(config.loop_count) and iteration >= config.loop_count
                if config.loop_delay and not last and not self.stop_event.is_set():
                    self.logger.debug("runner.loop.wait seconds=%d", config.loop_delay)
                    self._wait(config.loop_delay)
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)
        self.reporter.report_loop(stats)
        return self.exit_code

    # Test data maintenance

    def _open(self) -> Directory:
        conn = self.directory_factory()
        try:
            conn.connect()
            conn.bind()
        except DirectoryError as exc:
            conn.close()
            msg = f"connection failed: {exc}"
            raise SetupError(msg) from exc
        return conn

    def list_test_data(self) -> int:
        """
        Report the test roots left in the directory by earlier runs.

        Raises:
            SetupError: we could not connect

        """
        conn = self._open()
        try:
            listing = list_test_data(
                conn,
                self.config.base_dn,
                self.config.test_prefix,
                logger=self.logger.getChild("cleanup"),
            )
        except DirectoryError as exc:
            self.logger.error("runner.list_test_data.failed error=%s", exc)
            return 1
        finally:
            conn.close()
        self.reporter.report_test_data(self.config.base_dn, listing)
        return 0

    def cleanup_older_than(self) -> int:
        """
        Remove test roots older than :py:attr:`Config.cleanup_older_than`.

        Raises:
            SetupError: we could not connect

        Returns:
            0 if everything old was removed, 1 if not.

        """
        age = self.config.retention_age
        if age is None:
            msg = "no retention age configured"
            raise ValueError(msg)
        conn = self._open()
        try:
            result = cleanup_older_than(
                conn,
                self.config.base_dn,
                self.config.test_prefix,
                age,
                logger=self.logger.getChild("cleanup"),
            )
        except DirectoryError as exc:
            self.logger.error("runner.cleanup_older_than.failed error=%s", exc)
            return 1
        finally:
            conn.close()
        self.reporter.report_retention(self.config.cleanup_older_than, result)
        return 0 if result.ok else 1
