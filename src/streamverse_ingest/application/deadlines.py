"""Attempt-with-deadline helper."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def attempt_with_deadline(
    operation: Awaitable[T],
    timeout_seconds: float,
    *,
    compensate: Callable[[], Awaitable[None]] | None = None,
) -> T:
    """Run `operation` against a timer; on timeout cancel it and compensate.

    The operation is cancelled (not abandoned) when the timer wins, then
    `compensate` runs so that work already started elsewhere, such as a
    remote copy, is stopped too. The original `TimeoutError` is re-raised.
    """

    try:
        return await asyncio.wait_for(operation, timeout=timeout_seconds)
    except TimeoutError:
        if compensate is not None:
            try:
                await compensate()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Compensation after deadline failed: %s", exc)
        raise


__all__ = ["attempt_with_deadline"]
