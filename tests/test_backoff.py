import pytest

from tiered_router.backend.backoff import BackoffState


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_backoff_starts_after_trigger(make_settings, clock) -> None:
    state = BackoffState(make_settings(), clock=clock)

    state.record_failure("timeout")
    state.record_failure("timeout")
    assert state.in_backoff() is False

    state.record_failure("timeout")
    assert state.in_backoff() is True
    assert state.remaining_seconds() == pytest.approx(30.0)


def test_backoff_grows_and_caps(make_settings, clock) -> None:
    state = BackoffState(make_settings(), clock=clock)
    for _ in range(4):
        state.record_failure("timeout")
    assert state.current_delay() == pytest.approx(60.0)

    for _ in range(10):
        state.record_failure("timeout")
    assert state.current_delay() == pytest.approx(300.0)


def test_backoff_expires(make_settings, clock) -> None:
    state = BackoffState(make_settings(BACKOFF_FAILURES_TO_TRIGGER=1), clock=clock)
    state.record_failure("timeout")
    assert state.in_backoff() is True

    clock.now += 31
    assert state.in_backoff() is False


def test_success_resets(make_settings, clock) -> None:
    state = BackoffState(make_settings(), clock=clock)
    for _ in range(3):
        state.record_failure("timeout")

    state.record_success()

    snapshot = state.snapshot()
    assert snapshot["in_backoff"] is False
    assert snapshot["consecutive_failures"] == 0
    assert snapshot["last_failure_reason"] is None
