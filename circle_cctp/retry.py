"""Fixed-interval polling with an attempt budget.

Both custody API transactions and Iris attestations complete asynchronously,
so we poll them. :py:class:`RetryPolicy` describes how long to poll and which
errors are worth another attempt, and :py:func:`poll_until` runs the loop.

Example::

    from circle_cctp.retry import RetryPolicy, poll_until

    # In tests, do not sleep
    policy = RetryPolicy(max_attempts=3, interval=0)

    def check(progress):
        state = fetch_state()
        progress.status = state
        return state if state == "CONFIRMED" else None

    poll_until(check, policy, label="Approval")
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import requests

from circle_cctp.constants import DEFAULT_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL
from circle_cctp.exceptions import AuthError, PollCancelled, PollTimeout, RemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancelToken:
    """Cancel a running poll loop from another thread or a signal handler.

    The poll loop notices the cancellation while waiting between attempts.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds.

        :return:
            ``True`` if cancelled while waiting
        """
        return self._event.wait(timeout)


@dataclass(slots=True)
class PollProgress:
    """One observation emitted per polling attempt."""

    #: What we are waiting for, e.g. ``Burn`` or ``Attestation``
    label: str

    #: 1-based attempt number
    attempt: int

    max_attempts: int

    #: Remote status seen on this attempt, filled in by the check function
    status: str | None = None

    #: Error message if this attempt failed with a retryable error
    error: str | None = None


#: Callback receiving :py:class:`PollProgress` observations
ProgressCallback = Callable[[PollProgress], None]


@dataclass(slots=True)
class RetryPolicy:
    """How to poll for an asynchronous status change."""

    #: Maximum number of status checks
    max_attempts: int = DEFAULT_POLL_ATTEMPTS

    #: Seconds to wait between status checks
    interval: float = DEFAULT_POLL_INTERVAL

    #: Freshly submitted work is never ready immediately, so wait before the first check too
    wait_before_first_attempt: bool = True

    #: Errors that consume an attempt instead of aborting the poll
    retryable_exceptions: tuple[type[Exception], ...] = (RemoteError, requests.RequestException)

    #: Errors that abort the poll even if they match :py:attr:`retryable_exceptions`
    fatal_exceptions: tuple[type[Exception], ...] = (AuthError,)

    cancel_token: CancelToken | None = field(default=None, repr=False)

    def __post_init__(self):
        assert self.max_attempts >= 1, f"max_attempts must be positive, got {self.max_attempts}"
        assert self.interval >= 0, f"interval cannot be negative, got {self.interval}"

    def wait(self):
        """Sleep one interval.

        :raise PollCancelled:
            If the cancel token fires before or during the wait
        """
        if self.cancel_token is not None:
            if self.cancel_token.cancelled or self.cancel_token.wait(self.interval):
                raise PollCancelled("Polling cancelled")
        elif self.interval > 0:
            time.sleep(self.interval)


def poll_until(
    check: Callable[[PollProgress], T | None],
    policy: RetryPolicy,
    label: str,
    timeout_error: type[PollTimeout] = PollTimeout,
    progress: ProgressCallback | None = None,
) -> T:
    """Call ``check`` until it returns a value or the attempt budget runs out.

    :param check:
        Returns the result when done, ``None`` when not done yet.
        May set :py:attr:`PollProgress.status` on the observation it receives.

    :param policy:
        Attempt budget, interval and error classification

    :param label:
        Human readable name of the thing we wait for, used in logs and errors

    :param timeout_error:
        Exception class raised when attempts are exhausted

    :param progress:
        Receives one :py:class:`PollProgress` per attempt

    :return:
        The first non-``None`` value returned by ``check``

    :raise PollTimeout:
        Or the given subclass, after ``policy.max_attempts`` checks without a result

    :raise PollCancelled:
        If the policy's cancel token fires
    """
    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1 or policy.wait_before_first_attempt:
            policy.wait()

        observation = PollProgress(label=label, attempt=attempt, max_attempts=policy.max_attempts)

        try:
            result = check(observation)
        except policy.fatal_exceptions:
            raise
        except policy.retryable_exceptions as e:
            observation.error = str(e)
            logger.warning("Could not check %s status (attempt %d/%d): %s", label, attempt, policy.max_attempts, e)
            result = None

        logger.info("Checked %s status (attempt %d/%d), current state: %s", label, attempt, policy.max_attempts, observation.status)

        if progress is not None:
            progress(observation)

        if result is not None:
            return result

    raise timeout_error(f"Timeout waiting for {label} after {policy.max_attempts} attempts")
