from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
import time

from case_versions.core.exceptions import OperationCancelled


@dataclass
class Deadline:
    """Timeout/cancellation budget for long-running reads and sweeps.

    The budget is checked cooperatively: callers invoke `check()` between units
    of work. `timeout_seconds=None` means the budget never expires on its own,
    but it can still be cancelled.
    """
    timeout_seconds: Optional[float] = None
    label: str = "operation"
    started_monotonic: float = field(default_factory=time.monotonic)
    _cancelled: bool = False

    @classmethod
    def after(cls, timeout_seconds: Optional[float], label: str = "operation") -> "Deadline":
        return cls(timeout_seconds=timeout_seconds, label=label)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def seconds_elapsed(self) -> float:
        return max(0.0, time.monotonic() - self.started_monotonic)

    def get_latency_ms(self) -> int:
        return int(self.seconds_elapsed() * 1000)

    def is_expired(self) -> bool:
        if self._cancelled:
            return True
        if self.timeout_seconds is None:
            return False
        return self.seconds_elapsed() >= self.timeout_seconds

    def check(self) -> None:
        if self._cancelled:
            raise OperationCancelled(f"{self.label} was cancelled")
        if self.is_expired():
            raise OperationCancelled(
                f"{self.label} exceeded its {self.timeout_seconds}s budget"
            )
