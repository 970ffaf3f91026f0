"""
Collaborator call helpers — explicit timeouts and bounded retry with backoff.

Only transient failures are retried. Deterministic failures (format,
derivation, decrypt, contract reverts) propagate on the first attempt.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from .exceptions import (
    TRANSIENT_ERRORS,
    CollaboratorUnavailable,
    OperationTimeout,
    ProofGenerationError,
    VaultError,
)

logger = logging.getLogger("shadow_vault")

T = TypeVar("T")

BACKOFF_MULTIPLIER = 2.0


async def with_timeout(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await ``awaitable`` bounded by ``timeout`` seconds.

    Raises:
        OperationTimeout: If the call does not finish in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        raise OperationTimeout(f"{what} timed out after {timeout:.1f}s") from None


async def guarded(
    awaitable: Awaitable[T],
    what: str,
    error: Callable[[str], VaultError] = CollaboratorUnavailable,
) -> T:
    """Await a collaborator call, mapping foreign exceptions to ``error``.

    Vault errors pass through unchanged. Anything else raised by the
    collaborator (connection resets, RPC failures) is re-raised as
    ``error(...)`` chained to the original.
    """
    try:
        return await awaitable
    except VaultError:
        raise
    except Exception as err:
        raise error(f"{what} failed: {type(err).__name__}") from err


def is_transient(err: BaseException) -> bool:
    if isinstance(err, ProofGenerationError):
        return err.transient
    return isinstance(err, TRANSIENT_ERRORS)


async def retry_transient(
    call: Callable[[], Awaitable[T]],
    *,
    what: str,
    timeout: float,
    max_attempts: int,
    backoff: float,
    on_attempt: Optional[Callable[[int], None]] = None,
) -> T:
    """Run ``call`` with a timeout per attempt, retrying transient errors.

    Args:
        call: Zero-argument factory producing a fresh awaitable per attempt.
        what: Short operation name for logs and error messages.
        timeout: Per-attempt timeout in seconds.
        max_attempts: Total attempts including the first.
        backoff: Initial delay between attempts; doubles after each retry.
        on_attempt: Optional hook called with the attempt number.

    Returns:
        The result of the first successful attempt.

    Raises:
        VaultError: The last transient error once attempts are exhausted,
            or the first non-transient error.
    """
    delay = backoff
    for attempt in range(1, max_attempts + 1):
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            return await with_timeout(call(), timeout, what)
        except VaultError as err:
            if not is_transient(err) or attempt == max_attempts:
                raise
            logger.warning(
                "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                what, type(err).__name__, delay, attempt, max_attempts,
            )
            await asyncio.sleep(delay)
            delay *= BACKOFF_MULTIPLIER
    raise AssertionError("unreachable")  # pragma: no cover
