"""Retry utilities with exponential backoff and jitter."""

import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.wait import wait_base

logger = structlog.stdlib.get_logger(__name__)

MAX_JITTER_FRACTION = 0.5


@dataclass
class RetryOptions:
    """Backoff policy. Delays in seconds.

    Args:
        max_attempts: Total attempts, including the first
        initial_delay: Delay before the first retry
        max_delay: Cap on the exponential delay (before jitter)
        backoff_multiplier: Growth factor per attempt
        jitter: Add up to 50% random extra delay
        should_retry: ``(error, attempt) -> bool``; replaces the default policy
        on_retry: ``(error, attempt, delay)``, called before each sleep
        sleep: Async sleep function override
    """

    max_attempts: int = 3
    initial_delay: float = 0.1
    max_delay: float = 5.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    should_retry: Optional[Callable[[BaseException, int], bool]] = None
    on_retry: Optional[Callable[[BaseException, int, float], Any]] = None
    sleep: Optional[Callable[[float], Awaitable[None]]] = None


def is_default_retryable(error: BaseException) -> bool:
    """Retry errors the backend client marks retryable, and timeouts."""
    if getattr(error, "is_retryable", False):
        return True
    return isinstance(error, (TimeoutError, httpx.TimeoutException))


def compute_delay(attempt: int, options: RetryOptions, rand: Callable[[], float] = random.random) -> float:
    """Delay after failed ``attempt`` (1-based)."""
    delay = min(options.initial_delay * options.backoff_multiplier ** (attempt - 1), options.max_delay)
    if options.jitter:
        delay += delay * MAX_JITTER_FRACTION * rand()
    return delay


class wait_backoff_jitter(wait_base):
    """Tenacity wait strategy for ``compute_delay``."""

    def __init__(self, options: RetryOptions):
        self.options = options

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_delay(retry_state.attempt_number, self.options)


def _retry_predicate(options: RetryOptions) -> Callable[[RetryCallState], bool]:
    def predicate(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        if options.should_retry is not None:
            return bool(options.should_retry(error, retry_state.attempt_number))
        return is_default_retryable(error)

    return predicate


def _before_sleep(options: RetryOptions) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "retry.attempt_failed",
            attempt=retry_state.attempt_number,
            max_attempts=options.max_attempts,
            delay=round(delay, 3),
            error=str(error),
        )
        if options.on_retry is not None:
            options.on_retry(error, retry_state.attempt_number, delay)

    return before_sleep


def _retrying(options: RetryOptions) -> AsyncRetrying:
    kwargs = {}
    if options.sleep is not None:
        kwargs["sleep"] = options.sleep
    return AsyncRetrying(
        stop=stop_after_attempt(options.max_attempts),
        wait=wait_backoff_jitter(options),
        retry=_retry_predicate(options),
        before_sleep=_before_sleep(options),
        reraise=True,
        **kwargs,
    )


async def with_retry(fn: Callable[..., Awaitable[Any]], options: Optional[RetryOptions] = None, *args, **kwargs) -> Any:
    """Await ``fn(*args, **kwargs)``, retrying failures per ``options``.

    Non-retryable errors and the last error after exhausting attempts are re-raised
    unchanged.
    """
    return await _retrying(options or RetryOptions())(fn, *args, **kwargs)


def create_retryable(fn: Callable[..., Awaitable[Any]], options: Optional[RetryOptions] = None):
    """Bind ``fn`` to a fixed retry policy."""
    options = options or RetryOptions()

    @wraps(fn)
    async def wrapper(*args, **kwargs):
        return await with_retry(fn, options, *args, **kwargs)

    return wrapper


def retry_options_from_config(config, **overrides) -> RetryOptions:
    """Create RetryOptions from a RetryConfig model or a config dict with a retry section.

    Args:
        config: ``RetryConfig``, full config dict, or None for defaults
        overrides: RetryOptions fields to set directly (callbacks, sleep)
    """
    if config is None:
        retry_config = {}
    elif isinstance(config, dict):
        retry_config = config.get("retry", {})
    else:
        retry_config = config.model_dump()

    return RetryOptions(
        max_attempts=retry_config.get("max_attempts", 3),
        initial_delay=retry_config.get("initial_delay", 0.1),
        max_delay=retry_config.get("max_delay", 5.0),
        backoff_multiplier=retry_config.get("backoff_multiplier", 2.0),
        jitter=retry_config.get("jitter", True),
        **overrides,
    )
