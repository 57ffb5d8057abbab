# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/utils/retry.py

import functools
import logging
import time
from typing import Callable, Optional

log = logging.getLogger("paasdeploy")


class RetryError(RuntimeError):
    def __init__(self, name: str, attempts: int, last: Optional[BaseException]):
        self.attempts = attempts
        self.last = last
        super().__init__(f"{name} failed after {attempts} attempts: {last}")


def retry(
    *,
    attempts: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    give_up_on: tuple[type[Exception], ...] = (),
    max_delay: Optional[float] = None,
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent operations such as an SSH dial.

    attempts: total tries, values below 1 mean a single try
    delay: seconds before the second try, growing linearly after that
    max_delay: cap for the growing delay
    retry_on: exception types that trigger another try
    give_up_on: subclasses of retry_on that propagate immediately
    """
    total = max(1, attempts)

    def wait_for(attempt: int) -> float:
        wait = delay * attempt
        return min(wait, max_delay) if max_delay is not None else wait

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            last_exc = None
            for attempt in range(1, total + 1):
                try:
                    return fn(*args, **kwargs)
                except give_up_on:
                    raise
                except retry_on as exc:
                    last_exc = exc
                    if on_retry:
                        on_retry(attempt, exc)
                if attempt < total:
                    pause = wait_for(attempt)
                    log.debug("%s: retrying in %.1fs (%d/%d)", fn.__name__, pause, attempt, total)
                    time.sleep(pause)
            raise RetryError(fn.__name__, total, last_exc) from last_exc
        return wrapper
    return decorator
