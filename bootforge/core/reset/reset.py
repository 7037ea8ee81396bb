from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Literal, Optional

from bootforge.core.config.models import ExecutionContext
from bootforge.core.state.ledger import StateStore
from bootforge.errors import ExecutionError

from .backup import BackupRecord, create_backup
from .paths import ResetPlan, classify, guard_reason, protected_paths


_log = logging.getLogger("bootforge.reset")

ResetStatus = Literal["completed", "cancelled", "dry_run"]


@dataclass
class ResetResult:
    status: ResetStatus
    plan: ResetPlan
    backup: Optional[BackupRecord] = None
    deleted: List[Path] = field(default_factory=list)


def _describe(plan: ResetPlan, out: Callable[[str], None]) -> None:
    out(f"Project root: {plan.project_root}")
    out("Preserved:")
    for p in plan.preserve:
        out(f"  keep    {p}")
    out("To back up:")
    for p in plan.backup or []:
        out(f"  backup  {p}")
    if not plan.backup:
        out("  (nothing)")
    out("To delete:")
    for p in plan.delete:
        out(f"  delete  {p}")
    if not plan.delete:
        out("  (nothing)")
    for p, reason in plan.refused:
        out(f"  refused {p} ({reason})")


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def execute_reset(
    ctx: ExecutionContext,
    confirmed: bool = False,
    prompt: Callable[[str], str] = input,
    out: Callable[[str], None] = print,
) -> ResetResult:
    """Back up irreplaceable generated files, delete generated paths, clear state.

    Without ``confirmed`` the operator is shown both lists and asked; anything
    other than ``y`` cancels without touching the tree.
    """
    plan = classify(ctx)
    _describe(plan, out)

    if ctx.dry_run:
        out("[dry] reset would back up, delete and clear state as listed above")
        return ResetResult(status="dry_run", plan=plan)

    if not confirmed:
        if ctx.non_interactive:
            _log.warning("Reset not confirmed; pass --yes to reset non-interactively")
            return ResetResult(status="cancelled", plan=plan)
        try:
            answer = prompt("Proceed with reset? [y/N]: ")
        except EOFError:
            answer = ""
        if answer.strip().lower() != "y":
            out("Reset cancelled.")
            return ResetResult(status="cancelled", plan=plan)

    engine_present = ctx.engine_dir.exists()
    record = create_backup(plan.project_root, plan.backup) if plan.backup else None

    protected = protected_paths(ctx)
    deleted: List[Path] = []
    for path in plan.delete:
        if not (path.exists() or path.is_symlink()):
            continue
        # Re-checked right before the delete, whatever classify() decided.
        reason = guard_reason(path, ctx, protected)
        if reason is not None:
            _log.error("Refusing to delete %s: %s", path, reason)
            continue
        try:
            _remove(path)
        except OSError as e:
            raise ExecutionError(
                f"Could not delete {path}: {e}",
                hint="Fix permissions and run reset again; the backup is already in place.",
            ) from e
        deleted.append(path)
        _log.debug("Deleted %s", path)

    StateStore(ctx.state_file).clear_all()

    if engine_present and not ctx.engine_dir.exists():
        raise ExecutionError(
            f"Engine directory {ctx.engine_dir} is missing after reset",
            hint="Restore it from version control before the next run.",
        )

    _log.info("Reset complete: %d path(s) deleted", len(deleted))
    return ResetResult(status="completed", plan=plan, backup=record, deleted=deleted)
