# plates/retry.py

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    delay: float,
    is_retryable: Callable[[BaseException], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """
    Call ``fn`` until it succeeds, a non-retryable error is raised, or
    ``max_attempts`` calls have been made. Waits ``delay`` seconds between
    attempts. The last error is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    name = label or getattr(fn, "__name__", "call")
    attempt = 1
    while True:
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e):
                logger.debug(f"{name}: non-retryable failure on attempt {attempt}: {e}")
                raise
            if attempt >= max_attempts:
                logger.warning(f"{name}: giving up after {attempt} attempts: {e}")
                raise
            logger.info(f"{name}: attempt {attempt}/{max_attempts} failed ({e}), retrying in {delay}s")
            attempt += 1
            await sleep(delay)
