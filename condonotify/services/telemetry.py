from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class SweepSample:
    ts: float
    duration_ms: float
    checked: int
    corrected: int
    errors: int


_sweep_samples: Deque[SweepSample] = deque(maxlen=2000)
_counters: dict[str, int] = defaultdict(int)


def increment_counter(name: str, value: int = 1) -> None:
    # Store counters for reconciliation dashboards and alerting.
    _counters[name] += value


def get_counters() -> dict[str, int]:
    return dict(_counters)


def reset_counters() -> None:
    # Tests reset process-wide counters between cases.
    _counters.clear()
    _sweep_samples.clear()


def record_sweep(*, duration_ms: float, checked: int, corrected: int, errors: int) -> None:
    _sweep_samples.append(
        SweepSample(
            ts=time.time(),
            duration_ms=duration_ms,
            checked=checked,
            corrected=corrected,
            errors=errors,
        )
    )


def sweep_summary(window_s: int) -> dict[str, float | int | None]:
    # Aggregate recent sweeps so operators can spot a growing correction backlog.
    cutoff = time.time() - window_s
    samples = [sample for sample in _sweep_samples if sample.ts >= cutoff]
    if not samples:
        return {"runs": 0, "checked": 0, "corrected": 0, "errors": 0, "max_duration_ms": None}
    return {
        "runs": len(samples),
        "checked": sum(sample.checked for sample in samples),
        "corrected": sum(sample.corrected for sample in samples),
        "errors": sum(sample.errors for sample in samples),
        "max_duration_ms": max(sample.duration_ms for sample in samples),
    }
