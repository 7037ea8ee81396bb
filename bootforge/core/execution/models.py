from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional


Outcome = Literal["succeeded", "failed", "timed_out", "skipped"]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class UnitResult:
    unit_id: str
    phase: int
    outcome: Outcome
    returncode: Optional[int] = None
    duration_seconds: float = 0.0
    command: Optional[List[str]] = None
    reason: Optional[str] = None


@dataclass
class RunSummary:
    plan_id: str
    dry_run: bool = False
    started_ts: str = field(default_factory=_utc_now_iso)
    finished_ts: Optional[str] = None
    results: List[UnitResult] = field(default_factory=list)

    def add(self, result: UnitResult) -> None:
        self.results.append(result)

    def finish(self) -> None:
        self.finished_ts = _utc_now_iso()

    def ids_with(self, outcome: Outcome) -> List[str]:
        return [r.unit_id for r in self.results if r.outcome == outcome]

    @property
    def executed(self) -> List[str]:
        return [r.unit_id for r in self.results if r.outcome != "skipped"]

    @property
    def ok(self) -> bool:
        return not any(r.outcome in ("failed", "timed_out") for r in self.results)

    def recap_lines(self) -> List[str]:
        lines = []
        for r in self.results:
            detail = ""
            if r.outcome == "failed" and r.returncode is None:
                detail = f" ({r.reason})"
            elif r.outcome == "failed":
                detail = f" (exit {r.returncode})"
            elif r.outcome == "timed_out":
                detail = " (timeout)"
            elif r.reason:
                detail = f" ({r.reason})"
            lines.append(f"  {r.outcome:<10} {r.unit_id}{detail}  {r.duration_seconds:.1f}s")
        counts = {o: len(self.ids_with(o)) for o in ("succeeded", "failed", "timed_out", "skipped")}
        lines.append(
            "  total: "
            + ", ".join(f"{n} {o}" for o, n in counts.items() if n)
            + ("" if self.results else "nothing to do")
        )
        return lines
