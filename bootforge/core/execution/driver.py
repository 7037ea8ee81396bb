from __future__ import annotations

import logging
import shlex
from typing import Optional

from bootforge.core.config.models import ExecutionContext
from bootforge.core.execution.backends import ExecutionBackend, backend_for
from bootforge.core.execution.models import RunSummary, UnitResult
from bootforge.core.observability.metrics import RunMetrics
from bootforge.core.scheduler.models import ExecutionPlan, PlanStep
from bootforge.core.state.ledger import StateStore
from bootforge.errors import ExecutionError


_log = logging.getLogger("bootforge.driver")
_unit_log = logging.getLogger("bootforge.unit")

RESUME_HINT = "Fix the cause and run again; completed units are skipped and the run resumes at the failed unit."


class ExecutionDriver:
    """Runs an execution plan unit by unit, fail-fast.

    Each unit is a child process with the context injected as environment.
    Success is recorded in the state store before the next unit starts, so an
    aborted run resumes exactly at the failed unit.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        state: StateStore,
        backend: Optional[ExecutionBackend] = None,
        metrics: Optional[RunMetrics] = None,
    ):
        self.ctx = ctx
        self.state = state
        self.backend = backend or backend_for(ctx)
        self.metrics = metrics or RunMetrics()
        self.summary: Optional[RunSummary] = None

    def _timeout_for(self, step: PlanStep) -> Optional[int]:
        seconds = step.unit.timeout_seconds or self.ctx.max_cmd_seconds
        return seconds or None

    def _record(self, result: UnitResult) -> None:
        assert self.summary is not None
        self.summary.add(result)
        self.metrics.observe(result)

    def run_step(self, step: PlanStep, total: int) -> UnitResult:
        unit = step.unit
        if unit.source is None:
            raise ExecutionError(f"Unit {unit.id} has no executable source", unit_id=unit.id)

        _log.info("[%d/%d] phase %d: %s", step.position + 1, total, unit.phase, unit.id)
        env = self.ctx.as_env()
        env["BOOTFORGE_UNIT_ID"] = unit.id

        timeout = self._timeout_for(step)
        extra = {"unit": unit.id}
        try:
            outcome = self.backend.execute(
                unit,
                self.ctx,
                env,
                timeout,
                on_line=lambda line: _unit_log.info(line, extra=extra),
            )
        except OSError as e:
            command = self.backend.command_for(unit, self.ctx, env)
            return UnitResult(unit.id, unit.phase, "failed", None, 0.0, command, reason=f"could not be started: {e}")
        _log.debug("%s: %s", unit.id, shlex.join(outcome.command))

        if outcome.timed_out:
            return UnitResult(unit.id, unit.phase, "timed_out", outcome.returncode, outcome.duration_seconds, outcome.command)
        if outcome.returncode != 0:
            return UnitResult(unit.id, unit.phase, "failed", outcome.returncode, outcome.duration_seconds, outcome.command)
        return UnitResult(unit.id, unit.phase, "succeeded", 0, outcome.duration_seconds, outcome.command)

    def run(self, plan: ExecutionPlan) -> RunSummary:
        self.summary = RunSummary(plan_id=plan.compute_plan_id(), dry_run=self.ctx.dry_run)
        for skipped in plan.skipped:
            self._record(UnitResult(skipped.unit_id, skipped.phase, "skipped", reason=skipped.reason))

        if not self.ctx.dry_run:
            self.state.ensure()

        total = len(plan.steps)
        try:
            for step in plan.steps:
                result = self.run_step(step, total)
                self._record(result)

                if result.outcome == "succeeded":
                    self.state.mark_success(step.unit_id)
                    continue

                if result.outcome == "timed_out":
                    reason = f"timed out after {self._timeout_for(step)}s"
                elif result.returncode is None:
                    reason = result.reason or "could not be started"
                else:
                    reason = f"exited with code {result.returncode}"
                _log.error("%s %s", step.unit_id, reason)
                raise ExecutionError(
                    f"Unit {step.unit_id} {reason}",
                    hint=RESUME_HINT,
                    unit_id=step.unit_id,
                    returncode=result.returncode,
                    timed_out=result.outcome == "timed_out",
                    command=result.command,
                )
        finally:
            self.summary.finish()

        return self.summary
