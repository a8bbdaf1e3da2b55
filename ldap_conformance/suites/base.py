from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Callable, Union

from ..exceptions import DirectoryError, ResultCode
from ..logging import get_logger
from ..results import OperationKind, TestOutcome

#: Either a fixed message, or a function that builds one from a result
Message = Union[str, Callable[[Any], str]]
#: Looks at the result of a successful call and returns a failure message,
#: or ``None`` if the result is what we wanted
Verifier = Callable[[Any], Union[str, None]]

UNEXPECTED_SUCCESS = "ERROR: operation unexpectedly succeeded"


class ScenarioState(Enum):
    NOT_RUN = "not run"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


def _render(message: Message, value: Any) -> str:
    if callable(message):
        return message(value)
    return message


class Scenario:
    """
    One test case.  A scenario goes ``NOT_RUN -> RUNNING -> PASSED|FAILED``
    exactly once and produces exactly one :py:class:`TestOutcome`.

    The ``expect_*`` and :py:meth:`accept_either` methods run a single
    directory call and classify what happened:

    * :py:meth:`expect_success`: passes iff the call succeeds (and, if given,
      ``verify`` approves of the result).
    * :py:meth:`expect_rejection`: passes iff the call fails.  Servers
      disagree about exact result codes, so any error passes; the code we
      hoped for only changes the message.  Success is always a failure.
    * :py:meth:`accept_either`: both success and failure pass, because
      server policy legitimately varies.  ``verify`` may still fail a
      success.

    Args:
        name: the name of the scenario
        operation: the operation the scenario exercises

    Keyword Args:
        logger: the logger to use

    """

    def __init__(
        self,
        name: str,
        operation: OperationKind,
        logger: logging.Logger | None = None,
    ) -> None:
        self.name = name
        self.operation = operation
        self.logger: logging.Logger = logger or get_logger("suites")
        self.state: ScenarioState = ScenarioState.NOT_RUN
        self.outcome: TestOutcome | None = None
        self._started: float = 0.0

    def start(self) -> Scenario:
        if self.state is not ScenarioState.NOT_RUN:
            msg = f'scenario "{self.name}" has already been started'
            raise RuntimeError(msg)
        self.state = ScenarioState.RUNNING
        self._started = time.monotonic()
        self.logger.debug("scenario.start name=%s", self.name)
        return self

    def _finish(
        self, passed: bool, message: str, error: DirectoryError | None
    ) -> TestOutcome:
        if self.state is ScenarioState.NOT_RUN:
            self.start()
        if self.state is not ScenarioState.RUNNING:
            msg = f'scenario "{self.name}" has already finished'
            raise RuntimeError(msg)
        self.state = ScenarioState.PASSED if passed else ScenarioState.FAILED
        self.outcome = TestOutcome(
            name=self.name,
            operation=self.operation,
            passed=passed,
            elapsed=time.monotonic() - self._started,
            message=message,
            error=error,
        )
        if passed:
            self.logger.info(
                "scenario.passed name=%s elapsed=%.3fs message=%s",
                self.name,
                self.outcome.elapsed,
                message,
            )
        else:
            self.logger.warning(
                "scenario.failed name=%s elapsed=%.3fs message=%s error=%s",
                self.name,
                self.outcome.elapsed,
                message,
                error,
            )
        return self.outcome

    def succeed(self, message: str = "") -> TestOutcome:
        return self._finish(True, message, None)

    def fail(self, message: str, error: DirectoryError | None = None) -> TestOutcome:
        return self._finish(False, message, error)

    def expect_success(
        self,
        action: Callable[[], Any],
        message: Message = "",
        failure: str = "",
        verify: Verifier | None = None,
    ) -> TestOutcome:
        """
        Run ``action``, which must succeed.

        Args:
            action: the directory call to make

        Keyword Args:
            message: the message for a pass
            failure: prefix for the message when ``action`` raises
            verify: a further check of the result of ``action``

        """
        if self.state is ScenarioState.NOT_RUN:
            self.start()
        try:
            result = action()
        except DirectoryError as exc:
            prefix = failure or f"{self.name} failed"
            return self.fail(f"{prefix}: {exc}", error=exc)
        if verify is not None:
            problem = verify(result)
            if problem:
                return self.fail(problem)
        return self.succeed(_render(message, result))

    def expect_rejection(
        self,
        action: Callable[[], Any],
        expected: ResultCode | None = None,
        message: str = "",
        unexpected: str = UNEXPECTED_SUCCESS,
    ) -> TestOutcome:
        """
        Run ``action``, which the server should refuse.

        Args:
            action: the directory call to make

        Keyword Args:
            expected: the result code a well behaved server returns
            message: the message for a pass
            unexpected: the message when ``action`` succeeds

        """
        if self.state is ScenarioState.NOT_RUN:
            self.start()
        try:
            action()
        except DirectoryError as exc:
            text = message or "Correctly rejected"
            if expected is None:
                return self._finish(True, f"{text} (error: {exc})", exc)
            if exc.code is expected:
                return self._finish(True, text, exc)
            return self._finish(
                True,
                f"{text} (got {exc.code.label}, expected {expected.label})",
                exc,
            )
        return self.fail(unexpected)

    def accept_either(
        self,
        action: Callable[[], Any],
        accepted: Message,
        rejected: Message,
        verify: Verifier | None = None,
    ) -> TestOutcome:
        """
        Run ``action``; it may succeed or fail.

        Args:
            action: the directory call to make
            accepted: the message when ``action`` succeeds
            rejected: the message when ``action`` raises; if callable it is
                given the :py:class:`DirectoryError`

        Keyword Args:
            verify: a further check of the result of ``action``

        """
        if self.state is ScenarioState.NOT_RUN:
            self.start()
        try:
            result = action()
        except DirectoryError as exc:
            return self._finish(True, _render(rejected, exc), exc)
        if verify is not None:
            problem = verify(result)
            if problem:
                return self.fail(problem)
        return self.succeed(_render(accepted, result))


def expect_success(
    name: str,
    operation: OperationKind,
    action: Callable[[], Any],
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> TestOutcome:
    return Scenario(name, operation, logger=logger).expect_success(action, **kwargs)


def expect_rejection(
    name: str,
    operation: OperationKind,
    action: Callable[[], Any],
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> TestOutcome:
    return Scenario(name, operation, logger=logger).expect_rejection(action, **kwargs)


def accept_either(
    name: str,
    operation: OperationKind,
    action: Callable[[], Any],
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> TestOutcome:
    return Scenario(name, operation, logger=logger).accept_either(action, **kwargs)
