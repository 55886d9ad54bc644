"""Bounded suspension points."""

import asyncio
from typing import Awaitable, TypeVar

from sealbid.core.errors import Timeout
from sealbid.utils.logger import get_logger

logger = get_logger("timeouts")

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], seconds: float, action: str) -> T:
    """
    Await `awaitable` for at most `seconds`.

    Raises:
        Timeout: the bound elapsed; the awaited operation is cancelled and
            nothing is assumed about whether it reached the ledger.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.warning(f"{action} timed out after {seconds:g}s")
        raise Timeout(action, seconds) from exc
