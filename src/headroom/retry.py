import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from headroom.config import AuthType
from headroom.error_parsing import get_error_status, get_rate_limit_message, is_retryable_error

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RetryOptions:
    max_attempts: int = 5
    initial_delay: float = 5.0
    max_delay: float = 30.0
    jitter: float = 1.5


DEFAULT_RETRY_OPTIONS = RetryOptions()


def _log_before_sleep(auth_type: AuthType | None) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        if error is not None and get_error_status(error) == 429:
            LOGGER.warning(
                "Rate limited (attempt %s), retrying in %.1fs.%s",
                state.attempt_number,
                delay,
                get_rate_limit_message(auth_type),
            )
        else:
            LOGGER.warning("Attempt %s failed with %r, retrying in %.1fs", state.attempt_number, error, delay)

    return log


async def retry_with_backoff[T](
    operation: Callable[[], Awaitable[T]],
    *,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
    auth_type: AuthType | None = None,
    options: RetryOptions = DEFAULT_RETRY_OPTIONS,
) -> T:
    """
    Runs `operation` with exponential backoff while `should_retry` accepts the raised
    error. Gives up after `options.max_attempts` and re-raises the last error.
    """
    retrying = AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(max(1, options.max_attempts)),
        wait=wait_exponential_jitter(initial=options.initial_delay, max=options.max_delay, jitter=options.jitter),
        retry=retry_if_exception(should_retry),
        before_sleep=_log_before_sleep(auth_type),
    )
    return await retrying(operation)
