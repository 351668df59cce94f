"""Deadlines, fallback execution, health tracking and operation timing.

Pure logic, no FastAPI imports.

``FallbackManager.execute_with_fallback`` runs a primary callable on a
bounded worker pool under a ``Deadline``.  On expiry the caller stops
waiting and the deadline is cancelled; the worker sees it at its next
``deadline.check()`` and stops, or finishes and has its result discarded.
"""

import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from app.config import settings
from app.core import metrics
from app.core.errors import (
    IdentityError,
    NotFoundError,
    SearchTimeoutError,
    ServiceUnavailableError,
    ValidationError,
)
from app.models.schemas import OperationStats, ServiceHealth

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Caller mistakes: surfaced as-is, never absorbed by a fallback.
_CALLER_ERRORS = (ValidationError, NotFoundError, IdentityError)


# ---------------------------------------------------------------------------
# Deadline
# ---------------------------------------------------------------------------


class Deadline:
    """Cancellation token with an absolute expiry time.

    Passed down through every layer that loops over documents or chunks;
    those layers call ``check()`` between units of work.
    """

    def __init__(
        self,
        timeout: float,
        operation: str = "operation",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout = timeout
        self.operation = operation
        self._clock = clock
        self._expires_at = clock() + timeout
        self._cancelled = threading.Event()

    @classmethod
    def unbounded(cls, operation: str = "operation") -> "Deadline":
        return cls(float("inf"), operation)

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._cancelled.is_set() or self._clock() >= self._expires_at

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        """Raise ``SearchTimeoutError`` if the deadline has passed or was cancelled."""
        if self.expired:
            raise SearchTimeoutError(self.operation, self.timeout)


# ---------------------------------------------------------------------------
# Fallback manager
# ---------------------------------------------------------------------------


@dataclass
class FallbackResult(Generic[T]):
    """Value returned by ``execute_with_fallback``, tagged with its origin."""

    value: T
    fallback_used: bool = False
    primary_error: str | None = None


@dataclass
class _Registration:
    fallback: Callable[[Any], Any] | None = None
    timeout: float | None = None


class FallbackManager:
    """Runs named operations under a deadline with an optional fallback.

    Health per service name is self-healing: any primary success marks it
    healthy again.
    """

    def __init__(
        self,
        default_timeout: float | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.default_timeout = default_timeout or settings.fallback_timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.fallback_workers,
            thread_name_prefix="search-worker",
        )
        self._registry: dict[str, _Registration] = {}
        self._health: dict[str, ServiceHealth] = {}
        self._lock = threading.Lock()

    def register_fallback(
        self,
        name: str,
        fallback: Callable[[Any], Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Register *name* with an optional *fallback* and its own *timeout*."""
        with self._lock:
            self._registry[name] = _Registration(fallback, timeout)
            self._health.setdefault(name, ServiceHealth())

    def execute_with_fallback(
        self,
        name: str,
        primary: Callable[[Deadline], T],
        fallback_input: Any = None,
        timeout: float | None = None,
    ) -> FallbackResult[T]:
        """Run *primary* under a deadline; fall back on any failure.

        Validation and not-found errors propagate untouched.  If no
        fallback is registered the primary error is re-raised.  If the
        fallback fails too, ``ServiceUnavailableError`` names both errors.
        """
        with self._lock:
            registration = self._registry.get(name)
        timeout = timeout or self.default_timeout

        started = time.perf_counter()
        try:
            value = self._run(primary, Deadline(timeout, name))
        except _CALLER_ERRORS:
            raise
        except Exception as exc:
            self.mark_unhealthy(name, exc)
            logger.warning(
                "Primary '%s' failed after %.0f ms: %s",
                name, (time.perf_counter() - started) * 1000, exc,
                extra={"context": {
                    "event": "health",
                    "service": name,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                }},
            )

            if registration is None or registration.fallback is None:
                raise

            fallback = registration.fallback
            fallback_deadline = Deadline(
                registration.timeout or self.default_timeout, f"{name}_fallback",
            )
            try:
                value = self._run(lambda _deadline: fallback(fallback_input), fallback_deadline)
            except Exception as fallback_exc:
                metrics.service_failures_total.labels(service=name).inc()
                logger.error(
                    "Fallback for '%s' failed: %s", name, fallback_exc,
                    extra={"context": {
                        "event": "health",
                        "service": name,
                        "primary_error": str(exc),
                        "fallback_error": str(fallback_exc),
                    }},
                )
                raise ServiceUnavailableError(
                    name,
                    f"Service '{name}' unavailable: primary failed ({exc}); "
                    f"fallback failed ({fallback_exc})",
                    fallback_available=True,
                ) from fallback_exc

            metrics.fallbacks_total.labels(service=name).inc()
            logger.info(
                "Fallback for '%s' served the request.", name,
                extra={"context": {"event": "health", "service": name, "fallback_used": True}},
            )
            return FallbackResult(value, fallback_used=True, primary_error=str(exc))

        self.mark_healthy(name)
        return FallbackResult(value)

    def _run(self, fn: Callable[[Deadline], T], deadline: Deadline) -> T:
        future = self._executor.submit(fn, deadline)
        try:
            return future.result(timeout=deadline.remaining())
        except FutureTimeoutError:
            deadline.cancel()
            future.cancel()
            raise SearchTimeoutError(deadline.operation, deadline.timeout) from None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def mark_healthy(self, name: str) -> None:
        with self._lock:
            self._health[name] = ServiceHealth(
                status="healthy", last_check=datetime.now(timezone.utc),
            )

    def mark_unhealthy(self, name: str, error: BaseException | str) -> None:
        with self._lock:
            self._health[name] = ServiceHealth(
                status="unhealthy",
                last_error=str(error),
                last_check=datetime.now(timezone.utc),
            )

    def get_service_health(self, name: str) -> ServiceHealth:
        with self._lock:
            return self._health.get(name, ServiceHealth())

    def get_all_service_health(self) -> dict[str, ServiceHealth]:
        with self._lock:
            return dict(self._health)

    def reset_health(self) -> None:
        with self._lock:
            self._health = {name: ServiceHealth() for name in self._registry}

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


# ---------------------------------------------------------------------------
# Performance monitor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Sample:
    duration_ms: float
    success: bool
    slow: bool


@dataclass
class _ActiveOperation:
    operation_type: str
    started: float
    metadata: dict[str, Any] = field(default_factory=dict)


class PerformanceMonitor:
    """Times operations and keeps rolling per-type statistics."""

    def __init__(
        self,
        slow_threshold_ms: float | None = None,
        error_rate_threshold: float | None = None,
        slow_rate_threshold: float | None = None,
        window: int | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.slow_threshold_ms = slow_threshold_ms or settings.slow_operation_ms
        self.error_rate_threshold = error_rate_threshold or settings.error_rate_threshold
        self.slow_rate_threshold = slow_rate_threshold or settings.slow_rate_threshold
        self.window = window or settings.monitor_window
        self._clock = clock
        self._samples: dict[str, deque[_Sample]] = {}
        self._active: dict[str, _ActiveOperation] = {}
        self._lock = threading.Lock()

    def start_operation(self, operation_type: str, **metadata: Any) -> str:
        operation_id = uuid.uuid4().hex
        with self._lock:
            self._active[operation_id] = _ActiveOperation(
                operation_type, self._clock(), metadata,
            )
        return operation_id

    def end_operation(
        self,
        operation_id: str,
        success: bool = True,
        error: BaseException | None = None,
    ) -> float | None:
        """Finish an operation.  Returns its duration in ms, or None if unknown."""
        with self._lock:
            active = self._active.pop(operation_id, None)
        if active is None:
            return None

        duration_ms = (self._clock() - active.started) * 1000
        self.record(active.operation_type, duration_ms, success)

        if duration_ms > self.slow_threshold_ms:
            logger.warning(
                "Slow %s operation: %.0f ms", active.operation_type, duration_ms,
                extra={"context": {
                    "event": "performance",
                    "operation": active.operation_type,
                    "duration_ms": round(duration_ms, 2),
                    **active.metadata,
                }},
            )
        if not success:
            logger.error(
                "%s operation failed after %.0f ms: %s",
                active.operation_type, duration_ms, error,
                extra={"context": {
                    "event": "performance",
                    "operation": active.operation_type,
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(error).__name__ if error else None,
                    **active.metadata,
                }},
            )
        return duration_ms

    @contextmanager
    def track(self, operation_type: str, **metadata: Any) -> Iterator[None]:
        """Time the enclosed block; an exception counts as a failure and propagates."""
        operation_id = self.start_operation(operation_type, **metadata)
        try:
            yield
        except Exception as exc:
            self.end_operation(operation_id, success=False, error=exc)
            raise
        self.end_operation(operation_id, success=True)

    def record(self, operation_type: str, duration_ms: float, success: bool) -> None:
        sample = _Sample(duration_ms, success, duration_ms > self.slow_threshold_ms)
        with self._lock:
            samples = self._samples.get(operation_type)
            if samples is None:
                samples = deque(maxlen=self.window)
                self._samples[operation_type] = samples
            samples.append(sample)

        metrics.operations_total.labels(
            operation=operation_type, status="success" if success else "error",
        ).inc()
        metrics.operation_duration_seconds.labels(operation=operation_type).observe(
            duration_ms / 1000
        )

    def get_stats(self, operation_type: str | None = None) -> OperationStats:
        """Rolling statistics for one operation type, or all types together."""
        with self._lock:
            if operation_type is None:
                samples = [s for dq in self._samples.values() for s in dq]
            else:
                samples = list(self._samples.get(operation_type, ()))

        total = len(samples)
        name = operation_type or "overall"
        if total == 0:
            return OperationStats(operation_type=name)

        successful = sum(1 for s in samples if s.success)
        slow = sum(1 for s in samples if s.slow)
        error_rate = (total - successful) / total
        slow_rate = slow / total
        return OperationStats(
            operation_type=name,
            total=total,
            successful=successful,
            failed=total - successful,
            success_rate=successful / total,
            error_rate=error_rate,
            average_duration_ms=round(sum(s.duration_ms for s in samples) / total, 2),
            slow_operations=slow,
            slow_operation_rate=slow_rate,
            is_performing_well=(
                error_rate < self.error_rate_threshold
                and slow_rate < self.slow_rate_threshold
            ),
        )

    def is_performing_well(self, operation_type: str | None = None) -> bool:
        return self.get_stats(operation_type).is_performing_well

    def cleanup(self, max_age_seconds: float = 3600.0) -> int:
        """Forget operations started but never ended within *max_age_seconds*."""
        cutoff = self._clock() - max_age_seconds
        with self._lock:
            stale = [k for k, op in self._active.items() if op.started < cutoff]
            for key in stale:
                del self._active[key]
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._samples = {}
            self._active = {}


# ---------------------------------------------------------------------------
# Module-level singletons.
# ---------------------------------------------------------------------------
fallback_manager = FallbackManager()
performance_monitor = PerformanceMonitor()
