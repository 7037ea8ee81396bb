from __future__ import annotations

from typing import Dict, List

from bootforge.core.catalog.models import Unit
from bootforge.core.config.models import ExecutionContext

from .base import ExecutionBackend, interpreter_for


class LocalBackend(ExecutionBackend):
    name = "local"

    def command_for(self, unit: Unit, ctx: ExecutionContext, env: Dict[str, str]) -> List[str]:
        return interpreter_for(unit.source)
