import asyncio
import logging
import typing as t

from grpclib.const import Status
from grpclib.exceptions import GRPCError

from .barrier import CompletionBarrier


log = logging.getLogger(__name__)

_Handler = t.TypeVar("_Handler", bound=t.Callable[..., None])


class ScenarioAssertionError(AssertionError):
    pass


class ScenarioFailed(Exception):
    def __init__(self, name: str, error: BaseException) -> None:
        super().__init__("Scenario {!r} failed: {!r}".format(name, error))
        self.name = name
        self.error = error


class ScenarioTimeout(ScenarioFailed):
    def __init__(self, name: str, remaining: int, expected: int) -> None:
        error = TimeoutError(
            "{} of {} expected events did not occur".format(remaining, expected)
        )
        super().__init__(name, error)
        self.remaining = remaining


def expect_ok(error: t.Optional[BaseException]) -> None:
    if error is not None:
        raise ScenarioAssertionError("Call failed: {!r}".format(error)) from error


def expect_error(error: t.Optional[BaseException], status: Status) -> GRPCError:
    if not isinstance(error, GRPCError):
        raise ScenarioAssertionError(
            "Expected {} error, got {!r}".format(status.name, error)
        )
    if error.status is not status:
        raise ScenarioAssertionError(
            "Expected {} error, got {}: {}".format(
                status.name, error.status.name, error.message
            )
        ) from error
    return error


def expect_equal(actual: t.Any, expected: t.Any, what: str = "value") -> None:
    if actual != expected:
        raise ScenarioAssertionError(
            "Unexpected {}: {!r} != {!r}".format(what, actual, expected)
        )


class Scenario:
    """Joins the asynchronous events a test scenario expects.

    Every event handler wrapped with :meth:`step` signals the scenario's
    barrier after it returns; the scenario completes once ``expected``
    signals were received. A handler raising an exception fails the scenario
    instead, and nothing is counted after that.
    """

    def __init__(self, name: str, expected: int) -> None:
        self.name = name
        self._loop = asyncio.get_event_loop()
        self._result: asyncio.Future[None] = self._loop.create_future()
        self._barrier = CompletionBarrier(expected, self._complete)

    @property
    def remaining(self) -> int:
        return self._barrier.remaining

    @property
    def done(self) -> bool:
        return self._result.done()

    def _complete(self) -> None:
        if not self._result.done():
            log.debug("Scenario %r complete", self.name)
            self._result.set_result(None)

    def signal(self) -> None:
        if self._result.done():
            return
        self._barrier.signal()

    def fail(self, error: BaseException) -> None:
        if self._result.done():
            log.debug("Scenario %r already finished, ignoring %r", self.name, error)
            return
        log.debug("Scenario %r failed: %r", self.name, error)
        failure = ScenarioFailed(self.name, error)
        failure.__cause__ = error
        self._result.set_exception(failure)

    def guard(self, handler: _Handler) -> _Handler:
        """Wraps ``handler`` so its failure fails the scenario, without
        counting it as an expected event."""

        def wrapper(*args: t.Any) -> None:
            if self._result.done():
                return
            try:
                handler(*args)
            except Exception as exc:
                self.fail(exc)

        return t.cast(_Handler, wrapper)

    def step(self, handler: _Handler) -> _Handler:
        """Wraps ``handler`` so it signals the barrier once it returned."""

        def wrapper(*args: t.Any) -> None:
            if self._result.done():
                return
            try:
                handler(*args)
            except Exception as exc:
                self.fail(exc)
            else:
                self.signal()

        return t.cast(_Handler, wrapper)

    async def wait(self, timeout: t.Optional[float] = None) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(self._result), timeout)
        except asyncio.TimeoutError:
            if self._result.done():
                raise
            failure = ScenarioTimeout(
                self.name, self._barrier.remaining, self._barrier.expected,
            )
            self._result.set_exception(failure)
            self._result.exception()
            raise failure from None
