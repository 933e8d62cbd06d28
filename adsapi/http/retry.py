"""
Retry policy evaluation for the request executor.

The attempt loop of one logical call is an explicit state machine:

    ATTEMPTING(n) ──response, not retryable──────────────▶ SUCCEEDED
         │        ──retryable status / transport failure,
         │          attempts remain─────────────────────▶ ATTEMPTING(n+1)
         │        ──retryable status, none remain───────▶ SUCCEEDED (returned as-is)
         │        ──transport failure, none remain──────▶ FAILED_TRANSIENT
         │        ──request could not be built──────────▶ FAILED_FATAL
         └────────cancel / deadline─────────────────────▶ CANCELLED

Backoff delays apply before attempts 1..max_retries, never before the first.
"""

from __future__ import annotations

import random
from enum import Enum

from adsapi.config import BackoffStrategy, RetryPolicy


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_TRANSIENT = "failed_transient"
    FAILED_FATAL = "failed_fatal"
    CANCELLED = "cancelled"


class AttemptOutcome(str, Enum):
    RESPONSE = "response"
    RETRYABLE_STATUS = "retryable_status"
    TRANSPORT_FAILURE = "transport_failure"
    CANCELLED = "cancelled"
    FATAL = "fatal"


def next_state(outcome: AttemptOutcome, attempt: int, max_retries: int) -> AttemptState:
    """
    Decide where the loop goes after ``attempt`` (0-based) produced ``outcome``.

    Args:
        outcome: What the physical attempt produced.
        attempt: Index of the attempt that just finished.
        max_retries: Retries allowed on top of the first attempt.

    Returns:
        ATTEMPTING when another physical send should happen, otherwise the
        terminal state of the logical call.
    """
    attempts_remain = attempt < max_retries
    if outcome is AttemptOutcome.CANCELLED:
        return AttemptState.CANCELLED
    if outcome is AttemptOutcome.FATAL:
        return AttemptState.FAILED_FATAL
    if outcome is AttemptOutcome.RESPONSE:
        return AttemptState.SUCCEEDED
    if outcome is AttemptOutcome.RETRYABLE_STATUS:
        return AttemptState.ATTEMPTING if attempts_remain else AttemptState.SUCCEEDED
    return AttemptState.ATTEMPTING if attempts_remain else AttemptState.FAILED_TRANSIENT


def compute_delay(policy: RetryPolicy, retry_number: int) -> float:
    """
    Delay to sleep before retry ``retry_number`` (1 for the first retry).

    exponential: initial * multiplier ** (n - 1)
    linear:      initial * n
    fixed:       initial
    The result (plus optional jitter) is clamped to ``max_delay_s``.
    """
    if retry_number < 1:
        return 0.0
    base = policy.initial_delay_s
    if policy.backoff_strategy is BackoffStrategy.EXPONENTIAL:
        try:
            delay = base * (policy.multiplier ** (retry_number - 1))
        except OverflowError:
            delay = policy.max_delay_s
    elif policy.backoff_strategy is BackoffStrategy.LINEAR:
        delay = base * retry_number
    else:
        delay = base
    if policy.jitter_s:
        delay += random.uniform(0, policy.jitter_s)
    return min(policy.max_delay_s, delay)
