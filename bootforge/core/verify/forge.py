from __future__ import annotations

import logging
import shlex
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from bootforge.core.config.models import ExecutionContext
from bootforge.core.execution.process import run_streaming
from bootforge.errors import ExecutionError, PreconditionError


_log = logging.getLogger("bootforge.forge")
_out_log = logging.getLogger("bootforge.unit")

StepStatus = Literal["passed", "warned", "failed", "dry_run"]


@dataclass(frozen=True)
class ForgeStep:
    name: str
    config_key: str
    default_script: str
    fatal: bool


FORGE_STEPS = (
    ForgeStep("install", "FORGE_INSTALL_CMD", "install", fatal=True),
    ForgeStep("lint", "FORGE_LINT_CMD", "lint", fatal=False),
    ForgeStep("typecheck", "FORGE_TYPECHECK_CMD", "typecheck", fatal=False),
    ForgeStep("build", "FORGE_BUILD_CMD", "build", fatal=True),
)


@dataclass(frozen=True)
class ForgeStepResult:
    name: str
    status: StepStatus
    command: List[str]
    returncode: Optional[int] = None


@dataclass
class ForgeReport:
    steps: List[ForgeStepResult] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [s.name for s in self.steps if s.status == "warned"]

    @property
    def ok(self) -> bool:
        return all(s.status != "failed" for s in self.steps)


def forge_command(ctx: ExecutionContext, step: ForgeStep) -> List[str]:
    override = ctx.get(step.config_key)
    if override:
        return shlex.split(override)
    pm = ctx.get("PACKAGE_MANAGER") or "pnpm"
    if step.default_script == "install":
        return [pm, "install"]
    return [pm, "run", step.default_script]


def forge(
    ctx: ExecutionContext,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> ForgeReport:
    """Post-provision verification: install, lint, typecheck, build.

    Lint and typecheck failures are warnings; install or build failure is fatal.
    """
    report = ForgeReport()
    cwd = ctx.install_dir

    for step in FORGE_STEPS:
        cmd = forge_command(ctx, step)
        if ctx.dry_run:
            _log.info("[dry] %s: %s (in %s)", step.name, shlex.join(cmd), cwd)
            report.steps.append(ForgeStepResult(step.name, "dry_run", cmd))
            continue

        if not cwd.is_dir():
            raise PreconditionError(
                f"Install directory {cwd} does not exist",
                hint="Run 'bootforge run' before 'bootforge forge'.",
            )
        if which(cmd[0]) is None:
            raise PreconditionError(
                f"'{cmd[0]}' not found on PATH",
                hint="Install it or set PACKAGE_MANAGER / " + step.config_key + " in bootforge.conf.",
            )

        _log.info("forge %s: %s", step.name, shlex.join(cmd))
        try:
            outcome = run_streaming(
                cmd,
                cwd=cwd,
                env=ctx.as_env(),
                timeout=ctx.max_cmd_seconds or None,
                on_line=lambda line, name=step.name: _out_log.info(line, extra={"unit": f"forge:{name}"}),
            )
        except OSError as e:
            raise ExecutionError(
                f"forge {step.name} could not be started: {e}",
                hint="Check that " + step.config_key + " names an executable command.",
                command=cmd,
            ) from e
        if outcome.ok:
            report.steps.append(ForgeStepResult(step.name, "passed", cmd, 0))
            continue

        if not step.fatal:
            _log.warning("forge %s failed (exit %s); continuing", step.name, outcome.returncode)
            report.steps.append(ForgeStepResult(step.name, "warned", cmd, outcome.returncode))
            continue

        report.steps.append(ForgeStepResult(step.name, "failed", cmd, outcome.returncode))
        why = "timed out" if outcome.timed_out else f"exited with code {outcome.returncode}"
        raise ExecutionError(
            f"forge {step.name} {why}",
            hint="Inspect the output above, fix the project and run 'bootforge forge' again.",
            returncode=outcome.returncode,
            timed_out=outcome.timed_out,
            command=cmd,
        )

    return report
