from .paths import ResetPlan, classify, guard_reason
from .reset import ResetResult, execute_reset

__all__ = ["ResetPlan", "ResetResult", "classify", "execute_reset", "guard_reason"]
