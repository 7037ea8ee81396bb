from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, List, Optional

from bootforge.core.catalog.models import Unit
from bootforge.core.config.models import ExecutionContext
from bootforge.core.execution.process import ProcessOutcome, run_streaming


def interpreter_for(source: Path, python: str = sys.executable) -> List[str]:
    if source.suffix == ".sh":
        return ["bash", str(source)]
    if source.suffix == ".py":
        return [python, str(source)]
    return [str(source)]


class ExecutionBackend(ABC):
    name: str

    @abstractmethod
    def command_for(self, unit: Unit, ctx: ExecutionContext, env: Dict[str, str]) -> List[str]:
        """Return the argv that runs ``unit`` under this backend."""

    def on_timeout(self, unit: Unit) -> None:
        """Clean up anything the killed process may have left running."""

    def execute(
        self,
        unit: Unit,
        ctx: ExecutionContext,
        env: Dict[str, str],
        timeout: Optional[float],
        on_line: Callable[[str], None],
    ) -> ProcessOutcome:
        cwd = ctx.install_dir if ctx.install_dir.is_dir() else ctx.project_root
        outcome = run_streaming(
            self.command_for(unit, ctx, env),
            cwd=cwd,
            env=env,
            timeout=timeout,
            on_line=on_line,
        )
        if outcome.timed_out:
            self.on_timeout(unit)
        return outcome
