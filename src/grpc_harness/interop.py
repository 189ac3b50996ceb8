"""Interop-adjacent test cases run against a ``grpc.testing.TestService``.

Each test case declares how many events it expects up front, issues its
calls and counts every event whose assertions passed.
"""
import logging
import time
import typing as t
from dataclasses import dataclass

from grpclib.const import Status

from .call import CallStatus
from .client import ServiceClient
from .credentials import CallCredentials
from .credentials import MetadataContext
from .metadata import Metadata
from .scenario import Scenario
from .scenario import ScenarioAssertionError
from .scenario import ScenarioFailed
from .scenario import expect_equal
from .scenario import expect_error
from .scenario import expect_ok
from .server import ECHO_INITIAL_KEY
from .server import ECHO_TRAILING_KEY


log = logging.getLogger(__name__)

ECHO_INITIAL_VALUE = "test_initial_metadata_value"
ECHO_TRAILING_VALUE = bytes.fromhex("ababab")

DEFAULT_TIMEOUT = 10.0


async def echo_metadata_generator(context: MetadataContext) -> Metadata:
    metadata = Metadata()
    metadata.set(ECHO_INITIAL_KEY, ECHO_INITIAL_VALUE)
    return metadata


class GeneratorFailure(Exception):
    pass


async def failing_metadata_generator(context: MetadataContext) -> Metadata:
    raise GeneratorFailure("no credentials for {}".format(context.method_name))


echo_credentials = CallCredentials.from_metadata_generator(echo_metadata_generator)


def _expect_echoed_initial(metadata: Metadata) -> None:
    expect_equal(metadata.get(ECHO_INITIAL_KEY), [ECHO_INITIAL_VALUE], ECHO_INITIAL_KEY)


def _expect_echoed_trailing(status: CallStatus) -> None:
    echoed = status.metadata.get(ECHO_TRAILING_KEY)
    expect_equal(len(echoed), 1, "number of {} values".format(ECHO_TRAILING_KEY))
    expect_equal(t.cast(bytes, echoed[0]).hex(), ECHO_TRAILING_VALUE.hex(), ECHO_TRAILING_KEY)


async def many_concurrent_calls(
    client: ServiceClient,
    *,
    call_count: int = 100,
    timeout: t.Optional[float] = DEFAULT_TIMEOUT,
) -> None:
    scenario = Scenario("many_concurrent_calls", call_count)

    @scenario.step
    def on_complete(error: t.Any, response: t.Any) -> None:
        expect_ok(error)

    for _ in range(call_count):
        client.UnaryCall({}, callback=on_complete)
    await scenario.wait(timeout)


async def echo_metadata_from_call_credentials(
    client: ServiceClient,
    *,
    timeout: t.Optional[float] = DEFAULT_TIMEOUT,
) -> None:
    scenario = Scenario("echo_metadata_from_call_credentials", 2)

    @scenario.step
    def on_complete(error: t.Any, response: t.Any) -> None:
        expect_ok(error)

    call = client.UnaryCall({}, credentials=echo_credentials, callback=on_complete)
    call.on_metadata(scenario.step(_expect_echoed_initial))
    await scenario.wait(timeout)


async def same_metadata_on_two_calls(
    client: ServiceClient,
    *,
    timeout: t.Optional[float] = DEFAULT_TIMEOUT,
) -> None:
    scenario = Scenario("same_metadata_on_two_calls", 5)
    metadata = Metadata()
    metadata.set(ECHO_TRAILING_KEY, ECHO_TRAILING_VALUE)

    @scenario.step
    def on_second_complete(error: t.Any, response: t.Any) -> None:
        expect_ok(error)

    @scenario.guard
    def on_first_complete(error: t.Any, response: t.Any) -> None:
        expect_ok(error)
        second = client.UnaryCall(
            {}, metadata, credentials=echo_credentials, callback=on_second_complete,
        )
        second.on_metadata(scenario.step(_expect_echoed_initial))
        second.on_status(scenario.step(_expect_echoed_trailing))

    first = client.UnaryCall(
        {}, metadata, credentials=echo_credentials, callback=on_first_complete,
    )
    first.on_metadata(scenario.step(_expect_echoed_initial))
    first.on_status(scenario.step(_expect_echoed_trailing))
    await scenario.wait(timeout)


async def failing_call_credentials(
    client: ServiceClient,
    *,
    timeout: t.Optional[float] = DEFAULT_TIMEOUT,
) -> None:
    """A failing metadata generator must fail the call and the scenario."""
    scenario = Scenario("failing_call_credentials", 1)

    @scenario.step
    def on_complete(error: t.Any, response: t.Any) -> None:
        expect_ok(error)

    credentials = CallCredentials.from_metadata_generator(failing_metadata_generator)
    client.UnaryCall({}, credentials=credentials, callback=on_complete)
    try:
        await scenario.wait(timeout)
    except ScenarioFailed as exc:
        try:
            expect_error(exc.error.__cause__, Status.UNAVAILABLE)
        except ScenarioAssertionError as mismatch:
            raise ScenarioFailed(scenario.name, mismatch) from mismatch
        log.debug("Scenario failed as expected: %s", exc)
    else:
        raise ScenarioFailed(
            scenario.name,
            AssertionError("Call with failing credentials completed successfully"),
        )


TestCase = t.Callable[..., t.Awaitable[None]]

TEST_CASES: t.Dict[str, TestCase] = {
    "many_concurrent_calls": many_concurrent_calls,
    "echo_metadata_from_call_credentials": echo_metadata_from_call_credentials,
    "same_metadata_on_two_calls": same_metadata_on_two_calls,
    "failing_call_credentials": failing_call_credentials,
}


@dataclass(frozen=True)
class TestCaseResult:
    __test__ = False

    name: str
    passed: bool
    duration: float
    error: t.Optional[BaseException] = None


async def run_test_cases(
    client: ServiceClient,
    names: t.Optional[t.Sequence[str]] = None,
    *,
    timeout: t.Optional[float] = DEFAULT_TIMEOUT,
) -> t.List[TestCaseResult]:
    if names is None:
        names = list(TEST_CASES)
    unknown = [name for name in names if name not in TEST_CASES]
    if unknown:
        raise ValueError("Unknown test cases: {}".format(", ".join(unknown)))

    results = []
    for name in names:
        started = time.monotonic()
        try:
            await TEST_CASES[name](client, timeout=timeout)
        except ScenarioFailed as exc:
            result = TestCaseResult(name, False, time.monotonic() - started, exc)
            log.error("%s FAILED: %s", name, exc)
        else:
            result = TestCaseResult(name, True, time.monotonic() - started)
            log.info("%s passed in %.3fs", name, result.duration)
        results.append(result)
    return results
