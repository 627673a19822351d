"""Tests for the one-shot Future."""

# Third-party imports
import pytest

# Local/package imports
from procpool import AlreadyResolvedError, ExecutionResult, Future, ScheduleError


@pytest.fixture
def result():
    return ExecutionResult(exit_code=0, stdout=b"done\n")


def test_resolves_once(result):
    future = Future()
    assert not future.has_result()

    future.set_result(result)

    assert future.has_result()
    assert future.get_result() is result


def test_second_resolution_fails(result):
    future = Future()
    future.set_result(result)

    with pytest.raises(AlreadyResolvedError):
        future.set_result(ExecutionResult(exit_code=1))

    # The first result stays in place
    assert future.has_result()
    assert future.get_result() is result


def test_pending_without_driver_fails():
    with pytest.raises(ScheduleError):
        Future().get_result()


def test_get_result_pumps_driver(result):
    calls = []

    def driver(future):
        calls.append(future)
        future.set_result(result)

    future = Future(driver=driver)

    assert future.get_result() is result
    assert future.get_result() is result
    assert calls == [future]


def test_driver_that_does_not_resolve_fails():
    future = Future(driver=lambda f: None)

    with pytest.raises(ScheduleError):
        future.get_result()
    assert not future.has_result()


@pytest.mark.parametrize("value", [None, b"done\n", {"exit_code": 0}])
def test_non_result_values_are_rejected(value, result):
    future = Future()

    with pytest.raises(TypeError):
        future.set_result(value)

    # Still pending, and a real result resolves it exactly once
    assert not future.has_result()
    future.set_result(result)
    with pytest.raises(AlreadyResolvedError):
        future.set_result(result)
