import time
import functools
from loguru import logger


def timing_decorator_async(func):
    """
    Async decorator that logs how long a reconciliation step took, and how
    long it ran before failing. The wrapped coroutine's behaviour is unchanged.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        started = time.perf_counter()
        logger.info(f"'{func.__qualname__}' started")
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            duration = time.perf_counter() - started
            logger.error(f"'{func.__qualname__}' failed after {duration:.4f} seconds: {type(e).__name__}: {e}")
            raise
        duration = time.perf_counter() - started
        logger.info(f"'{func.__qualname__}' took {duration:.4f} seconds ({duration*1000:.2f} ms)")
        return result

    return wrapper
