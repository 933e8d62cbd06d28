import pytest

from adsapi.config import BackoffStrategy, RetryPolicy
from adsapi.http.retry import AttemptOutcome, AttemptState, compute_delay, next_state


def test_exponential_delay_clamped() -> None:
    policy = RetryPolicy(initial_delay_s=1, max_delay_s=5, multiplier=2)

    assert [compute_delay(policy, n) for n in range(1, 6)] == [1, 2, 4, 5, 5]


def test_linear_delay() -> None:
    policy = RetryPolicy(backoff_strategy=BackoffStrategy.LINEAR, initial_delay_s=0.5, max_delay_s=2)

    assert [compute_delay(policy, n) for n in range(1, 6)] == [0.5, 1.0, 1.5, 2.0, 2.0]


def test_fixed_delay() -> None:
    policy = RetryPolicy(backoff_strategy="fixed", initial_delay_s=0.25, max_delay_s=10)

    assert [compute_delay(policy, n) for n in range(1, 4)] == [0.25, 0.25, 0.25]


def test_no_delay_before_first_attempt() -> None:
    assert compute_delay(RetryPolicy(), 0) == 0.0


def test_huge_retry_number_does_not_overflow() -> None:
    policy = RetryPolicy(initial_delay_s=1, max_delay_s=30, multiplier=10)

    assert compute_delay(policy, 5000) == 30


def test_jitter_stays_within_max() -> None:
    policy = RetryPolicy(initial_delay_s=1, max_delay_s=1.2, jitter_s=0.5, backoff_strategy="fixed")

    for _ in range(50):
        assert 1 <= compute_delay(policy, 1) <= 1.2


@pytest.mark.parametrize(
    ("outcome", "attempt", "max_retries", "expected"),
    [
        (AttemptOutcome.RESPONSE, 0, 3, AttemptState.SUCCEEDED),
        (AttemptOutcome.RETRYABLE_STATUS, 0, 3, AttemptState.ATTEMPTING),
        (AttemptOutcome.RETRYABLE_STATUS, 3, 3, AttemptState.SUCCEEDED),
        (AttemptOutcome.TRANSPORT_FAILURE, 2, 3, AttemptState.ATTEMPTING),
        (AttemptOutcome.TRANSPORT_FAILURE, 3, 3, AttemptState.FAILED_TRANSIENT),
        (AttemptOutcome.TRANSPORT_FAILURE, 0, 0, AttemptState.FAILED_TRANSIENT),
        (AttemptOutcome.CANCELLED, 0, 3, AttemptState.CANCELLED),
        (AttemptOutcome.FATAL, 0, 3, AttemptState.FAILED_FATAL),
    ],
)
def test_next_state(outcome: AttemptOutcome, attempt: int, max_retries: int, expected: AttemptState) -> None:
    assert next_state(outcome, attempt, max_retries) is expected
