"""
Mshahara Payroll - Store Retry Helper

Runs one unit of work in a database transaction with bounded retries.

- OperationalError (connection drop, deadlock, serialization failure) is
  retried with a linear backoff, then surfaced as TransientStoreException.
- IntegrityError is never retried; it is mapped through
  ``on_integrity_error`` or raised as a conflict.
- Exceeding the timeout rolls back and raises TransientStoreException.
- Any other exception rolls back and propagates unchanged.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.utils.error_handling import (
    AppException,
    ConflictException,
    ErrorCode,
    TransientStoreException,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_store_retry(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    description: str,
    on_integrity_error: Optional[Callable[[IntegrityError], AppException]] = None,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    timeout_seconds: Optional[float] = None,
) -> T:
    """
    Await ``operation`` until it succeeds or fails permanently.

    The operation must open and commit its own work on ``db``; it is
    re-run from scratch after each rollback.
    """
    attempts = max_attempts or settings.store_max_retries
    backoff = settings.store_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
    timeout = timeout_seconds or settings.payroll_calculation_timeout_seconds

    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError:
            await db.rollback()
            logger.error(f"{description} exceeded {timeout}s and was rolled back")
            raise TransientStoreException(
                message=f"{description} did not finish in time and was rolled back. Please retry.",
                code=ErrorCode.CALCULATION_TIMEOUT,
                attempts=attempt,
            )
        except IntegrityError as e:
            await db.rollback()
            logger.warning(f"{description} hit a constraint violation: {e.orig}")
            if on_integrity_error is not None:
                raise on_integrity_error(e)
            raise ConflictException(
                message=f"{description} conflicts with existing data",
                code=ErrorCode.DATA_INTEGRITY_ERROR,
            )
        except OperationalError as e:
            await db.rollback()
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise TransientStoreException(attempts=attempt, original_error=e)
            logger.warning(
                f"{description} hit a transient store error (attempt {attempt}/{attempts}); retrying"
            )
            await asyncio.sleep(backoff * attempt)
        except Exception:
            await db.rollback()
            raise

    # Unreachable: the final attempt either returns or raises
    raise TransientStoreException(attempts=attempts)
