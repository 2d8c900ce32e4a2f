"""Bounded retry with a fixed pause, used for file operations that can hit a lock."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

T = TypeVar('T')
Hook = Callable[[BaseException], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retries an async operation a fixed number of times with a fixed pause.

    Attributes:
        max_attempts: Total number of attempts, including the first.
        delay: Pause in seconds between attempts.
        retry_on: Exception type(s) that trigger another attempt. Anything
            else propagates immediately.
    """
    max_attempts: int = 6
    delay: float = 0.2
    retry_on: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = OSError

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def run(self, operation: Callable[[], Awaitable[T]],
                  before_retry: Optional[Hook] = None,
                  on_give_up: Optional[Hook] = None) -> T:
        """
        Runs `operation` until it succeeds or the attempts are used up.

        Args:
            operation: Zero-argument coroutine function performing one attempt.
            before_retry: Awaited after a failed attempt, before the pause;
                used to clear whatever blocked the operation.
            on_give_up: Awaited once when every attempt has failed, before the
                last error is re-raised.

        Returns:
            Whatever the first successful attempt returned.

        Raises:
            The exception from the final attempt when all attempts failed.
        """
        logger = logging.getLogger(__name__)
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt == self.max_attempts:
                    break
                if before_retry:
                    await before_retry(e)
                await asyncio.sleep(self.delay)

        assert last_error is not None
        if on_give_up:
            await on_give_up(last_error)
        raise last_error
