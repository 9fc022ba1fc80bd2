"""
Reliability Utilities.

Includes the Circuit Breaker pattern and the two categories of downstream
calls used by the parcel services:

- critical: failure or timeout aborts the enclosing operation
- advisory: failure or timeout is logged and the operation proceeds
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Any, Type

from backend.app.core.exceptions import AppException, DependencyError

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED" # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
            if self.state == "HALF_OPEN":
                self.reset_state()
            return result
        except Exception as e:
            self.record_failure()
            raise e

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


async def run_critical(
    label: str,
    func: Callable[..., Awaitable[Any]],
    *args,
    timeout: float,
    error_cls: Type[DependencyError] = DependencyError,
    **kwargs
) -> Any:
    """
    Await a mandatory dependency call.

    Application errors raised by the dependency propagate unchanged; timeouts
    and unexpected exceptions are re-raised as ``error_cls``.
    """
    try:
        return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
    except AppException:
        raise
    except asyncio.TimeoutError:
        logger.error("%s timed out after %ss", label, timeout)
        raise error_cls(f"{label} timed out")
    except Exception as e:
        logger.error("%s failed: %s", label, e)
        raise error_cls(f"{label} failed: {e}")


async def run_advisory(
    label: str,
    func: Callable[..., Awaitable[Any]],
    *args,
    timeout: float,
    **kwargs
) -> bool:
    """
    Await a best-effort dependency call.

    Returns True when the call completed, False when it failed or timed out.
    Failures never propagate to the caller.
    """
    try:
        await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %ss (ignored)", label, timeout)
    except Exception as e:
        logger.warning("%s failed (ignored): %s", label, e)
    return False


# Primary geocoding provider guard
geocoding_circuit_breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60)
