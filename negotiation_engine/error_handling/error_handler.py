"""
Error handler with retry logic for persistence calls.

Implements exponential backoff and escalates an exhausted retry budget as
PersistenceUnavailable.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable
from datetime import datetime

from .exceptions import EngineError, PersistenceUnavailable


# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of attempts
        initial_backoff_seconds: Delay before the first retry
        backoff_multiplier: Multiplier applied to the delay on each retry
    """
    max_retries: int = 3
    initial_backoff_seconds: float = 2.0
    backoff_multiplier: float = 2.0

    def get_backoff_delay(self, attempt: int) -> float:
        """
        Calculate backoff delay before retry attempt.

        delay = initial_backoff_seconds * (backoff_multiplier ^ attempt)

        Args:
            attempt: The retry attempt number (0-indexed)

        Returns:
            Delay in seconds before the retry attempt
        """
        return self.initial_backoff_seconds * (self.backoff_multiplier ** attempt)


class ErrorHandler:
    """
    Retries transient persistence failures with exponential backoff.

    Engine errors (validation, conflict, not-found) are raised immediately;
    they describe the request, not the substrate, and retrying cannot help.

    Attributes:
        config: Retry configuration
    """

    def __init__(self, config: RetryConfig = None):
        self.config = config or RetryConfig()

    async def retry_with_backoff(
        self,
        operation: Callable,
        *args,
        **kwargs
    ) -> Any:
        """
        Execute operation with exponential backoff retry logic.

        Args:
            operation: Async callable to execute
            *args: Positional arguments for the operation
            **kwargs: Keyword arguments for the operation

        Returns:
            Result from successful operation execution

        Raises:
            EngineError: Raised by the operation, passed through untouched
            PersistenceUnavailable: If all retries are exhausted
        """
        name = getattr(operation, "__name__", repr(operation))
        last_exception = None

        for attempt in range(self.config.max_retries):
            try:
                return await operation(*args, **kwargs)
            except EngineError:
                raise
            except Exception as e:
                last_exception = e
                self._log_error(name, attempt + 1, e)

                if attempt == self.config.max_retries - 1:
                    break

                backoff_delay = self.config.get_backoff_delay(attempt)
                logger.info(f"Waiting {backoff_delay:.1f}s before retry...")
                await asyncio.sleep(backoff_delay)

        logger.error(
            f"Operation {name} failed after {self.config.max_retries} attempts. "
            f"Final error: {last_exception}"
        )
        raise PersistenceUnavailable(
            f"{name} failed after {self.config.max_retries} attempts: {last_exception}"
        ) from last_exception

    def _log_error(self, operation_name: str, attempt: int, error: Exception) -> None:
        """
        Log error with timestamp and attempt context.
        """
        logger.error(
            f"Operation failed: {operation_name} | "
            f"Attempt: {attempt}/{self.config.max_retries} | "
            f"Error: {type(error).__name__}: {error}"
        )
        logger.debug(f"Failure recorded at {datetime.now().isoformat()}")
