from .models import ExecutionPlan, PlanStep, SkippedUnit
from .planner import build_plan, validate_catalog

__all__ = ["ExecutionPlan", "PlanStep", "SkippedUnit", "build_plan", "validate_catalog"]
