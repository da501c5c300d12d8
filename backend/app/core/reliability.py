"""
Reliability utilities for calls to a remote ledger service.

Includes the Circuit Breaker pattern.
"""

import time
import logging
from typing import Callable, Any, Tuple, Type

from fastapi import status

from backend.app.core.exceptions import AppException

logger = logging.getLogger("ledger")


class CircuitOpenError(AppException):
    """Raised while the circuit is open and calls are being rejected."""

    def __init__(self, retry_after: float):
        super().__init__(
            message="Ledger service unavailable, calls suspended",
            error_code="ERR_LEDGER_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": round(retry_after, 1)}
        )


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.

    After `failure_threshold` consecutive failures of the kinds listed in
    `tracked_exceptions`, the circuit opens and rejects calls for
    `reset_timeout` seconds. The next call after that is a trial: success
    closes the circuit, failure opens it again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: int = 60,
        tracked_exceptions: Tuple[Type[BaseException], ...] = (Exception,)
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.tracked_exceptions = tracked_exceptions
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            elapsed = time.time() - self.last_failure_time
            if elapsed > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(retry_after=self.reset_timeout - elapsed)

        try:
            result = await func(*args, **kwargs)
        except self.tracked_exceptions:
            self.record_failure()
            raise

        if self.state == "HALF_OPEN" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning("Circuit opened", extra={"failures": self.failures})
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"
