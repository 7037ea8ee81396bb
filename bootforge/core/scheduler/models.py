from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from bootforge.core.catalog.models import Unit


SkipReason = Literal["profile_disabled", "already_succeeded", "phase_filtered", "not_selected"]

PLAN_VERSION = "1"


@dataclass(frozen=True)
class PlanStep:
    position: int
    unit: Unit

    @property
    def unit_id(self) -> str:
        return self.unit.id

    @property
    def phase(self) -> int:
        return self.unit.phase


@dataclass(frozen=True)
class SkippedUnit:
    unit_id: str
    phase: int
    reason: SkipReason
    detail: Optional[str] = None


@dataclass(frozen=True)
class ExecutionPlan:
    stack_profile: str
    steps: List[PlanStep] = field(default_factory=list)
    skipped: List[SkippedUnit] = field(default_factory=list)

    def unit_ids(self) -> List[str]:
        return [s.unit_id for s in self.steps]

    def is_empty(self) -> bool:
        return not self.steps

    def compute_plan_id(self) -> str:
        payload = {
            "plan_version": PLAN_VERSION,
            "stack_profile": self.stack_profile,
            "steps": [
                {
                    "unit_id": s.unit_id,
                    "phase": s.phase,
                    "depends_on": list(s.unit.dependencies),
                }
                for s in self.steps
            ],
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
