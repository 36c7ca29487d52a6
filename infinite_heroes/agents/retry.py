import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from infinite_heroes.agents.context_loader import get_user_friendly_error
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import ComicError, GenerationError
from infinite_heroes.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    backoff: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` with a per-attempt timeout and exponential backoff.

    Transport errors and timeouts are retried. ComicError subclasses raised by
    the operation (e.g. a response that does not parse) are not: asking again
    with the same prompt rarely fixes them and the user can regenerate.
    After the last attempt the failure is raised as GenerationError.
    """
    attempts = max(1, attempts or settings.GENERATION_MAX_ATTEMPTS)
    timeout = timeout if timeout is not None else settings.GENERATION_TIMEOUT_SECONDS
    backoff = backoff if backoff is not None else settings.GENERATION_BACKOFF_SECONDS

    last_error: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except ComicError:
            raise
        except asyncio.TimeoutError as e:
            last_error = e
            reason = f"timed out after {timeout}s"
        except Exception as e:
            last_error = e
            reason = str(e) or type(e).__name__

        if attempt < attempts - 1:
            wait = backoff * (2 ** attempt)
            logger.warning(f"[{label}] attempt {attempt + 1}/{attempts} failed ({reason}), retry in {wait}s")
            await sleep(wait)
        else:
            logger.error(f"[{label}] giving up after {attempts} attempts ({reason})")

    error_type = "TIMEOUT" if isinstance(last_error, asyncio.TimeoutError) else "GENERATION_ERROR"
    raise GenerationError(get_user_friendly_error(error_type), stage=label) from last_error
