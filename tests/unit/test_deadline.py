import pytest

from dbcutover.core.engine.deadline import DeadlineBudget
from dbcutover.core.errors import DeadlineExceededError, ErrorKind


def test_remaining_shrinks_and_never_goes_negative(clock):
    budget = DeadlineBudget(100, clock=clock)
    assert budget.remaining() == pytest.approx(100)

    clock.advance(30)
    assert budget.remaining() == pytest.approx(70)
    assert not budget.expired()

    clock.advance(200)
    assert budget.remaining() == 0.0
    assert budget.expired()
    assert budget.elapsed() == pytest.approx(230)


def test_ensure_remaining_fails_fast_once_spent(clock):
    budget = DeadlineBudget(10, clock=clock)
    assert budget.ensure_remaining("creating Blue/Green Deployment") == pytest.approx(10)

    clock.advance(10)
    with pytest.raises(DeadlineExceededError) as excinfo:
        budget.ensure_remaining("switching over Blue/Green Deployment")

    assert "switching over Blue/Green Deployment" in str(excinfo.value)
    assert excinfo.value.kind is ErrorKind.TIMEOUT


def test_negative_budget_rejected(clock):
    with pytest.raises(ValueError):
        DeadlineBudget(-1, clock=clock)


def test_sequential_stages_share_one_deadline(clock):
    budget = DeadlineBudget(60, clock=clock)
    first = budget.remaining()
    clock.advance(45)
    second = budget.remaining()

    assert first == pytest.approx(60)
    assert second == pytest.approx(15)
    assert budget.deadline == pytest.approx(budget.started_at + 60)
