import pytest

from dbcutover.core.config import WaiterDefaults
from dbcutover.core.engine.waiter import StateWaiter, WaitSpec, build_wait_spec
from dbcutover.core.entities.status import (
    EMPTY_TARGET,
    INSTANCE_AVAILABLE_PENDING,
    INSTANCE_AVAILABLE_TARGET,
    INSTANCE_DELETED_PENDING,
)
from dbcutover.core.errors import (
    DeadlineExceededError,
    NotFoundError,
    RemoteAPIError,
    UnexpectedStateError,
    WaitTimeoutError,
)


class ScriptedFetch:
    """Replays statuses; the last one sticks, ``None`` means missing."""

    def __init__(self, *states):
        self.states = list(states)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if state is None:
            return None, ""
        return {"status": state}, state


def available_spec(timeout=600.0, **overrides):
    fields = {"poll_interval": 10.0, "settle_delay": 0.0, "continuous_target_occurrence": 3}
    fields.update(overrides)
    return WaitSpec(INSTANCE_AVAILABLE_PENDING, INSTANCE_AVAILABLE_TARGET, timeout, **fields)


def test_target_must_be_observed_consecutively(clock):
    fetch = ScriptedFetch("modifying", "available", "available", "available")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    observation = waiter.wait(fetch, available_spec())

    assert observation == {"status": "available"}
    assert fetch.calls == 4
    assert clock.sleeps == [10.0, 10.0, 10.0]


def test_pending_status_resets_target_count(clock):
    fetch = ScriptedFetch("available", "modifying", "available", "available", "available")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    waiter.wait(fetch, available_spec())

    assert fetch.calls == 5


def test_unexpected_status_fails_immediately(clock):
    fetch = ScriptedFetch("modifying", "incompatible-parameters")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    with pytest.raises(UnexpectedStateError) as excinfo:
        waiter.wait(fetch, available_spec())

    assert excinfo.value.state == "incompatible-parameters"
    assert excinfo.value.observation == {"status": "incompatible-parameters"}
    assert fetch.calls == 2


def test_disappearance_is_success_for_empty_target(clock):
    fetch = ScriptedFetch("deleting", "deleting", None)
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)
    spec = WaitSpec(INSTANCE_DELETED_PENDING, EMPTY_TARGET, 600.0, continuous_target_occurrence=1)

    assert spec.waits_for_disappearance
    assert waiter.wait(fetch, spec) is None
    assert fetch.calls == 3


def test_fetch_not_found_error_counts_as_gone(clock):
    def fetch():
        raise NotFoundError("gone")

    waiter = StateWaiter(clock=clock, sleep=clock.sleep)
    spec = WaitSpec(INSTANCE_DELETED_PENDING, EMPTY_TARGET, 600.0)

    assert waiter.wait(fetch, spec) is None


def test_not_found_tolerated_for_limited_checks(clock):
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)
    fetch = ScriptedFetch(None, None, "available")

    observation = waiter.wait(fetch, available_spec(continuous_target_occurrence=1))
    assert observation == {"status": "available"}

    missing = ScriptedFetch(None)
    with pytest.raises(NotFoundError):
        waiter.wait(missing, available_spec(not_found_checks=2))
    assert missing.calls == 3


def test_timeout_reports_last_state(clock):
    fetch = ScriptedFetch("modifying")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    with pytest.raises(WaitTimeoutError) as excinfo:
        waiter.wait(fetch, available_spec(timeout=35.0))

    assert excinfo.value.last_state == "modifying"
    assert excinfo.value.observation == {"status": "modifying"}
    assert fetch.calls == 4
    # The final sleep is capped at the remaining time.
    assert clock.sleeps == [10.0, 10.0, 10.0, 5.0]


def test_settle_delay_before_first_poll(clock):
    fetch = ScriptedFetch("available")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    waiter.wait(fetch, available_spec(settle_delay=60.0, continuous_target_occurrence=1))

    assert clock.sleeps == [60.0]


def test_zero_poll_interval_uses_exponential_backoff(clock):
    fetch = ScriptedFetch("modifying", "modifying", "modifying", "available")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    waiter.wait(fetch, available_spec(poll_interval=0.0, continuous_target_occurrence=1))

    assert clock.sleeps == pytest.approx([0.1, 0.2, 0.4])


def test_exhausted_timeout_fails_without_polling(clock):
    fetch = ScriptedFetch("available")
    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    with pytest.raises(DeadlineExceededError):
        waiter.wait(fetch, available_spec(timeout=0.0))
    assert fetch.calls == 0


def test_wait_spec_validation_and_overrides():
    with pytest.raises(ValueError):
        WaitSpec({"available"}, {"available"}, 10.0)

    spec = available_spec()
    assert spec.with_overrides(settle_delay=None) is spec
    assert spec.with_overrides(settle_delay=0.0).settle_delay == 0.0


def test_build_wait_spec_uses_profile_and_overrides():
    profile = WaiterDefaults(poll_interval=5.0, settle_delay=30.0, continuous_target_occurrence=2, not_found_checks=4)

    spec = build_wait_spec(INSTANCE_AVAILABLE_PENDING, INSTANCE_AVAILABLE_TARGET, 120.0, profile, settle_delay=0.0)

    assert spec.poll_interval == 5.0
    assert spec.settle_delay == 0.0
    assert spec.continuous_target_occurrence == 2
    assert spec.not_found_checks == 4

    default_delay = build_wait_spec(INSTANCE_AVAILABLE_PENDING, INSTANCE_AVAILABLE_TARGET, 120.0, profile, settle_delay=None)
    assert default_delay.settle_delay == 30.0


def test_fetch_error_propagates_without_polling_again(clock):
    calls = []

    def throttled():
        calls.append(clock())
        raise RemoteAPIError("Throttling", "Rate exceeded")

    waiter = StateWaiter(clock=clock, sleep=clock.sleep)

    with pytest.raises(RemoteAPIError) as excinfo:
        waiter.wait(throttled, available_spec())

    assert excinfo.value.code == "Throttling"
    assert len(calls) == 1
    assert clock.sleeps == []
