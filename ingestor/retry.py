"""Declarative fixed-delay retry policy."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """Retry a callable a fixed number of times with a fixed pause."""
    attempts: int = 3
    delay_ms: int = 3000
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call func, retrying on the configured exception types.

        Args:
            func: Callable to invoke
            *args: Positional arguments passed to func
            **kwargs: Keyword arguments passed to func

        Returns:
            Return value of the first successful call

        Raises:
            The last exception once all attempts are exhausted
        """
        attempts = max(1, self.attempts)
        name = getattr(func, '__name__', repr(func))

        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                if attempt >= attempts:
                    logger.error(f"All {attempts} attempts failed for {name}: {e}")
                    raise
                logger.warning(
                    f"Attempt {attempt}/{attempts} failed for {name}: {e}. "
                    f"Retrying in {self.delay_ms / 1000:.1f}s"
                )
                if self.delay_ms > 0:
                    time.sleep(self.delay_ms / 1000)

        raise RuntimeError(f"Retry loop exited without result for {name}")
