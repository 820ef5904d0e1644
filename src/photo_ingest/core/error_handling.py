# src/photo_ingest/core/error_handling.py

import asyncio
import functools
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

import httpx
from botocore.exceptions import (
    ClientError as BotocoreClientError,
    ConnectionError as BotocoreConnectionError,
    ReadTimeoutError as BotocoreReadTimeoutError,
)
from PIL import UnidentifiedImageError as PILUnidentifiedImageError
from pydantic import BaseModel, Field

from .exceptions import (
    DecodeError,
    PhotoIngestError,
    StorageError,
    TransientIOError,
    is_retryable,
)

RETRYABLE_S3_ERROR_CODES = (
    "SlowDown",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "InternalError",
    "ServiceUnavailable",
    "ProvisionedThroughputExceededException",
)

RATE_LIMIT_ERROR_CODES = (
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "LimitExceededException",
    "TooManyRequestsException",
)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Exponential backoff with additive jitter."""

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 1.0

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """
        Delay before the retry that follows failed ``attempt`` (1-based).

        ``min(base * 2^(attempt-1), max) + U(0, jitter)``.
        """
        exponential = self.base_delay * (2 ** max(0, attempt - 1))
        jitter = (rng or random).uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return min(exponential, self.max_delay) + jitter


ITEM_RETRY_POLICY = RetryPolicy(max_attempts=5, base_delay=2.0, max_delay=30.0, jitter=1.0)
INDEX_RETRY_POLICY = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=30.0, jitter=1.0)


def client_error_code(exc: BaseException) -> str:
    """Error code of a botocore ``ClientError``, or ``""``."""
    if isinstance(exc, BotocoreClientError):
        return exc.response.get("Error", {}).get("Code", "") or ""
    return ""


def client_error_status(exc: BaseException) -> int:
    if isinstance(exc, BotocoreClientError):
        return int(exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)
    return 0


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for throttling signatures from AWS services."""
    if isinstance(exc, PhotoIngestError) and exc.__cause__ is not None:
        exc = exc.__cause__
    code = client_error_code(exc)
    if code in RATE_LIMIT_ERROR_CODES:
        return True
    return client_error_status(exc) == 429


def storage_error_from(exc: BaseException, operation: str) -> StorageError:
    """Classify a botocore failure as a retryable or fatal ``StorageError``."""
    if isinstance(exc, BotocoreClientError):
        code = client_error_code(exc)
        status = client_error_status(exc)
        retryable = code in RETRYABLE_S3_ERROR_CODES or status >= 500 or status == 429
        return StorageError(
            f"S3 {operation} failed ({code or status}): {exc}",
            retryable=retryable,
            code=code,
        )
    if isinstance(exc, (BotocoreConnectionError, BotocoreReadTimeoutError, asyncio.TimeoutError, OSError)):
        return StorageError(f"S3 {operation} network failure: {exc}", retryable=True)
    return StorageError(f"S3 {operation} failed: {exc}", retryable=False)


def with_error_handling(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Wrap a coroutine function with standardized error translation.

    Library errors are mapped onto the pipeline taxonomy so callers only
    deal with ``PhotoIngestError`` subclasses.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        logger = logging.getLogger(func.__module__ + "." + func.__name__)
        try:
            return await func(*args, **kwargs)
        except PhotoIngestError:
            raise
        except PILUnidentifiedImageError as e:
            logger.error(f"Error in '{func.__name__}': {e}")
            raise DecodeError(f"Failed to identify image in {func.__name__}: {e}") from e
        except BotocoreClientError as e:
            logger.error(f"Error in '{func.__name__}': {e}")
            raise storage_error_from(e, func.__name__) from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            logger.warning(f"Transient error in '{func.__name__}': {e!r}")
            raise TransientIOError(f"Network error in {func.__name__}: {e!r}") from e
        except Exception as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise

    return wrapper


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> Tuple[T, int]:
    """
    Run ``operation`` until it succeeds, a non-retryable error occurs, or
    ``policy.max_attempts`` is reached.

    Returns:
        ``(result, attempts_used)``

    Raises:
        The last exception raised by ``operation``. Its ``attempts`` attribute
        is set to the number of attempts made.
    """
    logger = logging.getLogger(__name__ + ".retry_async")
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(), attempt
        except Exception as e:
            if not should_retry(e) or attempt >= policy.max_attempts:
                if attempt > 1:
                    logger.error(
                        f"{description} failed after {attempt} attempt(s). Error: {e}"
                    )
                setattr(e, "attempts", attempt)
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                f"{description} failed. Attempt {attempt}/{policy.max_attempts}. "
                f"Retrying in {delay:.2f}s. Error: {e}"
            )
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """

    def __init__(self, operation_name: str = "Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.logger = logging.getLogger(
            self.__class__.__module__ + "." + self.__class__.__name__
        )

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i + 1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        if exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        elif not self.errors:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item") -> None:
        """
        Report an error for a specific item.

        Args:
            error_message: The error message or exception string.
            item_identifier: Identifies the failed item (e.g. source id).
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(
            f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}"
        )
