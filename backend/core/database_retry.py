# backend/core/database_retry.py

import logging
import random
import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Set, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import TransientStoreFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Database error codes that indicate retry-able conditions
RETRY_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "57014",  # query_canceled (statement timeout)
    # SQLite (for testing)
    "database is locked",
    "database table is locked",
}


def is_retryable_error(error: Exception) -> bool:
    """
    Check if a database error is transient

    Version conflicts and pool timeouts always are; driver errors are
    classified by message and error code.
    """
    if isinstance(error, (StaleDataError, PoolTimeoutError)):
        return True

    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error).lower()
        if any(word in error_str for word in ["deadlock", "serialization", "lock", "timeout"]):
            return True

        if hasattr(error, "orig") and hasattr(error.orig, "pgcode"):
            return error.orig.pgcode in RETRY_ERROR_CODES
        elif hasattr(error, "orig") and hasattr(error.orig, "args"):
            error_code = str(error.orig.args[0]) if error.orig.args else ""
            return any(code in error_code for code in RETRY_ERROR_CODES)

    return False


@contextmanager
def unit_of_work(db: Session):
    """
    Commit everything done inside the block or nothing at all.

    Transient store errors are re-raised as TransientStoreFailure after the
    rollback, every other error propagates unchanged.
    """
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        if is_retryable_error(e):
            logger.warning(f"Transient store failure, unit of work rolled back: {e}")
            raise TransientStoreFailure(str(e)) from e
        raise


def retry_on_conflict(
    func: Callable[..., T],
    *args,
    max_retries: int = 3,
    initial_delay: float = 0.05,
    max_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    **kwargs,
) -> T:
    """
    Call func again after a TransientStoreFailure with exponential backoff

    func must reload whatever it reads; a retry is a fresh "reload and
    recheck", so a state change made by the winner of a race surfaces as
    the corresponding business error on the next attempt.
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except TransientStoreFailure as e:
            if attempt == max_retries:
                raise

            actual_delay = min(delay, max_delay)
            if jitter:
                # Add random jitter (0-25% of delay)
                actual_delay *= 1 + random.random() * 0.25

            logger.warning(
                f"Store conflict on attempt {attempt + 1}/{max_retries + 1}. "
                f"Retrying in {actual_delay:.2f}s. Error: {e.message}"
            )
            time.sleep(actual_delay)
            delay *= backoff_factor


def with_conflict_retry(max_retries: int = 3, initial_delay: float = 0.05):
    """
    Decorator form of retry_on_conflict

    Example:
        @with_conflict_retry(max_retries=5)
        def approve(claim_id):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            return retry_on_conflict(
                func, *args, max_retries=max_retries, initial_delay=initial_delay, **kwargs
            )

        return wrapper

    return decorator
