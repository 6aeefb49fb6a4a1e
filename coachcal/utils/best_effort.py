# coachcal/utils/best_effort.py
"""
Timeout protection for side effects that must never fail a booking.

A collaborator call (meeting link, reminders, event publish) is wrapped in
``run_best_effort``: it is bounded by a timeout and any failure is turned into
a warning string on the returned ``BestEffort`` instead of an exception.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BestEffort(Generic[T]):
    """Outcome of a best-effort call: a value, or a warning explaining its absence."""
    name: str
    value: Optional[T] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.warning is None


@dataclass
class Warnings:
    """Collects warnings from several best-effort calls for one response."""
    items: List[str] = field(default_factory=list)

    def add(self, result: BestEffort) -> BestEffort:
        if result.warning:
            self.items.append(result.warning)
        return result


async def with_timeout(coro: Awaitable[T], timeout_seconds: float = 5.0, default_value: Any = None):
    """
    Execute a coroutine with a timeout, returning default_value if timeout occurs.
    Unlike ``run_best_effort`` other exceptions propagate.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("Operation timed out after %ss, using default value", timeout_seconds)
        return default_value


async def run_best_effort(name: str, coro: Awaitable[T], timeout_seconds: float = 5.0) -> BestEffort[T]:
    """
    Await ``coro`` within ``timeout_seconds``.

    Returns:
        BestEffort with ``value`` on success, or with ``warning`` set to
        ``"<name> failed: <reason>"`` on timeout or error.
    """
    try:
        value = await asyncio.wait_for(coro, timeout=timeout_seconds)
        return BestEffort(name=name, value=value)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %ss", name, timeout_seconds)
        return BestEffort(name=name, warning=f"{name} failed: timed out after {timeout_seconds}s")
    except Exception as e:
        logger.warning("%s failed: %s", name, e)
        return BestEffort(name=name, warning=f"{name} failed: {e}")
