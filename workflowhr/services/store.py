"""
Store round-trip policy.

Every call into the store is a point where the operation may block or fail
independently of earlier calls in the same logical operation. Transient
failures are retried with exponential backoff; once the attempts are spent
the caller gets ServiceUnavailableError, distinct from validation and
not-found errors.
"""
import functools
import logging

from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from workflowhr.core.config import settings
from workflowhr.core.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)

TRANSIENT_STORE_ERRORS = (OperationalError, DisconnectionError, PoolTimeoutError)


def store_operation(func):
    """
    Wrap a service method that talks to the store.

    The wrapped method must belong to an object exposing the session as
    ``self.db``. The session is rolled back between attempts so the retry
    starts from a clean unit of work.
    """
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        def _before_sleep(retry_state):
            exc = retry_state.outcome.exception()
            logger.warning(
                f"Store call {func.__qualname__} failed (attempt {retry_state.attempt_number}): {exc}. Retrying."
            )
            self.db.rollback()

        retrying = Retrying(
            stop=stop_after_attempt(max(1, settings.store.retry_attempts)),
            wait=wait_exponential(
                multiplier=settings.store.retry_backoff_seconds,
                max=settings.store.retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(TRANSIENT_STORE_ERRORS),
            before_sleep=_before_sleep,
            reraise=True,
        )
        try:
            return retrying(func, self, *args, **kwargs)
        except TRANSIENT_STORE_ERRORS as exc:
            logger.error(f"Store call {func.__qualname__} exhausted retries: {exc}")
            self.db.rollback()
            raise ServiceUnavailableError() from exc

    return wrapper
