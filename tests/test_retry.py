import pytest

from conftest import RecordingSleep
from vistavid_pipeline.domain.exceptions import RetriesExhaustedException
from vistavid_pipeline.utils.retry import NotReady, call_with_retry, wait_until


def test_wait_until_returns_on_first_success():
    sleep = RecordingSleep()
    assert wait_until(lambda: True, attempts=5, delay=2.0, sleep=sleep)
    assert sleep.calls == []


def test_wait_until_gives_up_without_trailing_sleep():
    sleep = RecordingSleep()
    checks = []

    def never():
        checks.append(1)
        return False

    assert not wait_until(never, attempts=3, delay=2.0, sleep=sleep)
    assert len(checks) == 3
    assert sleep.calls == [2.0, 2.0]


def test_wait_until_treats_predicate_errors_as_not_ready():
    sleep = RecordingSleep()
    outcomes = iter([RuntimeError("flaky"), False, True])

    def predicate():
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert wait_until(predicate, attempts=5, delay=1.0, sleep=sleep)
    assert sleep.calls == [1.0, 1.0]


def test_call_with_retry_uses_suggested_then_default_delay():
    sleep = RecordingSleep()
    attempts = iter([NotReady(retry_after=7.5), NotReady(), "done"])

    def fn():
        item = next(attempts)
        if isinstance(item, Exception):
            raise item
        return item

    assert call_with_retry(fn, max_attempts=5, default_delay=3.0, sleep=sleep) == "done"
    assert sleep.calls == [7.5, 3.0]


def test_call_with_retry_exhausts():
    sleep = RecordingSleep()

    def fn():
        raise NotReady("warming up")

    with pytest.raises(RetriesExhaustedException) as excinfo:
        call_with_retry(fn, max_attempts=3, default_delay=1.0, description="Thing", sleep=sleep)

    assert excinfo.value.attempts == 3
    assert "warming up" in str(excinfo.value)
    assert sleep.calls == [1.0, 1.0]


def test_call_with_retry_does_not_retry_other_errors():
    sleep = RecordingSleep()
    calls = []

    def fn():
        calls.append(1)
        raise KeyError("boom")

    with pytest.raises(KeyError):
        call_with_retry(fn, max_attempts=5, default_delay=1.0, sleep=sleep)
    assert len(calls) == 1
    assert sleep.calls == []
