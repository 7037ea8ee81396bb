from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

from bootforge.core.execution.models import UnitResult


_log = logging.getLogger("bootforge.metrics")

_DURATION_BUCKETS = (1, 5, 15, 30, 60, 120, 300, 600, 900, 1800)


class RunMetrics:
    """Per-run Prometheus registry, exported in textfile-collector format."""

    def __init__(self):
        self.registry = CollectorRegistry()
        self.units_total = Counter(
            "bootforge_units_total",
            "Units processed by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.unit_duration = Histogram(
            "bootforge_unit_duration_seconds",
            "Wall-clock duration of executed units",
            buckets=_DURATION_BUCKETS,
            registry=self.registry,
        )

    def observe(self, result: UnitResult) -> None:
        self.units_total.labels(outcome=result.outcome).inc()
        if result.outcome != "skipped":
            self.unit_duration.observe(result.duration_seconds)

    def count(self, outcome: str) -> float:
        value = self.registry.get_sample_value("bootforge_units_total", {"outcome": outcome})
        return value or 0.0

    def write(self, path: Optional[Path]) -> None:
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            write_to_textfile(str(path), self.registry)
        except OSError as e:
            _log.warning("Could not write metrics to %s: %s", path, e)
