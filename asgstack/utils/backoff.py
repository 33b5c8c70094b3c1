# This file is part of asgstack. See LICENSE file for license information.
"""Backoff util to retry a function with exponential backoff for specific exceptions."""

import logging
import random
import time
from functools import wraps
from typing import Callable, Optional, Tuple, Type

from asgstack.errors import StackTimeoutError

log = logging.getLogger(__name__)


def exponential_backoff(
    retries=5,
    base_delay=1,
    max_time=None,
    jitter=True,
    exceptions: Tuple[Type[Exception], ...] = (),
    retry_if: Optional[Callable[[Exception], bool]] = None,
):
    """
    Retry a function with exponential backoff for specific exceptions.

    :param retries: Number of retry attempts.
    :param base_delay: Initial delay (in seconds).
    :param max_time: Maximum total time (in seconds) that can elapse before giving up.
    :param jitter: Whether to add random jitter to the delay.
    :param exceptions: A tuple of exception types to retry on. Retries on any exception if empty.
    :param retry_if: Optional predicate; a matching exception is only retried when it returns True.
    :return: A decorator that applies exponential backoff to a function.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            last_exception = None

            for retry in range(retries + 1):  # initial call + retries
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    last_exception = e
                    if exceptions and not isinstance(e, exceptions):
                        raise
                    if retry_if is not None and not retry_if(e):
                        raise

                    if max_time and (time.time() - start_time) >= max_time:
                        break

                    if retry == retries:
                        break

                    delay = base_delay * (2**retry)
                    if jitter:
                        delay *= random.uniform(0.5, 1.5)

                    # Never sleep past max_time
                    if max_time:
                        elapsed = time.time() - start_time
                        remaining_time = max_time - elapsed
                        delay = min(delay, remaining_time)

                    log.warning(
                        "Retry %s of %s failed with %s: %s, retrying in "
                        "%.2f seconds...",
                        retry + 1,
                        func.__name__,
                        type(e).__name__,
                        e,
                        delay,
                    )
                    time.sleep(delay)

            raise StackTimeoutError(
                "{} did not succeed after {} attempt(s)".format(
                    func.__name__, retry + 1
                )
            ) from last_exception

        return wrapper

    return decorator


def is_aws_error(*codes: str) -> Callable[[Exception], bool]:
    """Build a `retry_if` predicate matching botocore ClientError codes.

    >>> class Fake(Exception):
    ...     response = {"Error": {"Code": "DependencyViolation"}}
    >>> is_aws_error("DependencyViolation")(Fake())
    True
    >>> is_aws_error("Throttling")(Fake())
    False
    """

    def predicate(error: Exception) -> bool:
        response = getattr(error, "response", None) or {}
        return response.get("Error", {}).get("Code") in codes

    return predicate
