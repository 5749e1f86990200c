"""Retry Controller - Bounded, blocking retry loop around one attempt.

The loop is strictly sequential: one attempt at a time, with a plain
``time.sleep`` between attempts. A cancelled RequestContext can make an
attempt fail early, but it never shortens the sleep.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from reqchain.models import RetryPolicy

if TYPE_CHECKING:
    import httpx

    from reqchain.errors import ReqchainError

logger = logging.getLogger(__name__)

RETRY_COUNT_HEADER = "Retry-Count"


@dataclass
class AttemptResult:
    """What one attempt produced. A response and errors are not exclusive."""

    response: httpx.Response | None
    body: bytes = b""
    errors: list[ReqchainError] = field(default_factory=list)


class RetryController:
    """Runs an attempt until it succeeds or the policy is exhausted.

    Usage:
        controller = RetryController(policy)
        result = controller.run(lambda: send_once(descriptor))

    The policy's attempt_count is mutated in place; the owner decides whether
    to pass a fresh copy per run.
    """

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def should_retry(self, result: AttemptResult) -> bool:
        """Evaluate the retry condition for one finished attempt."""
        policy = self.policy
        if not policy.enabled or policy.attempt_count >= policy.max_attempts:
            return False
        if result.errors:
            return True
        return result.response is not None and result.response.status_code in policy.retryable_statuses

    def run(self, attempt: Callable[[], AttemptResult]) -> AttemptResult:
        """Call *attempt* until the retry condition is false.

        Returns:
            The last attempt's result, unchanged apart from the Retry-Count
            response header. Exhaustion is not an error of its own; callers
            inspect the status code and errors.
        """
        while True:
            result = attempt()
            if not self.should_retry(result):
                break

            reason = (
                f"error: {result.errors[0]}" if result.errors
                else f"status {result.response.status_code}"  # type: ignore[union-attr]
            )
            logger.warning(
                "Retrying request (%d/%d) after %s; sleeping %.3fs",
                self.policy.attempt_count + 1,
                self.policy.max_attempts,
                reason,
                self.policy.delay,
            )
            time.sleep(self.policy.delay)
            self.policy.attempt_count += 1

        if result.response is not None:
            result.response.headers[RETRY_COUNT_HEADER] = str(self.policy.attempt_count)
        return result
