from __future__ import annotations

import argparse
import logging
import shlex
import sys
from pathlib import Path
from typing import Dict, List, Optional

from bootforge import __version__
from bootforge.core.catalog.registry import Catalog, CatalogRegistry
from bootforge.core.config.loader import adopt_environment, find_project_root, load_context
from bootforge.core.config.models import ExecutionContext
from bootforge.core.execution.driver import ExecutionDriver
from bootforge.core.execution.primitives import UnitActions
from bootforge.core.observability.logsetup import configure_logging
from bootforge.core.observability.metrics import RunMetrics
from bootforge.core.profiles.resolver import disabled_tags
from bootforge.core.reset.reset import execute_reset
from bootforge.core.safety.git_gate import ensure_clean_worktree
from bootforge.core.safety.prereqs import check_prerequisites
from bootforge.core.scheduler.planner import build_plan
from bootforge.core.state.ledger import StateStore
from bootforge.core.verify.forge import forge
from bootforge.errors import BootforgeError, CatalogError, ExecutionError


_log = logging.getLogger("bootforge.cli")


# ---------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------

def _context(args: argparse.Namespace) -> ExecutionContext:
    overrides: Dict[str, str] = {}
    if args.dry_run:
        overrides["DRY_RUN"] = "true"
    if args.verbose:
        overrides["VERBOSE"] = "true"
    if getattr(args, "force", False):
        overrides["BOOTSTRAP_RESUME_MODE"] = "rerun"

    root = find_project_root(Path(args.root) if args.root else None)
    ctx = load_context(root, non_interactive=args.non_interactive, overrides=overrides)

    log_file = ctx.get("LOG_FILE")
    configure_logging(
        verbose=ctx.verbose,
        log_format=ctx.log_format,
        log_file=(ctx.project_root / log_file) if log_file else None,
    )
    args.verbose = ctx.verbose
    return ctx


def _catalog(ctx: ExecutionContext) -> Catalog:
    catalog = CatalogRegistry(ctx.units_dir).load()
    if not catalog.units and not catalog.failures:
        _log.warning("No units found in %s", ctx.units_dir)
    return catalog


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------

def cmd_run(args: argparse.Namespace) -> int:
    ctx = _context(args)
    catalog = _catalog(ctx)
    ctx = adopt_environment(ctx, (var for unit in catalog.units for var in unit.required_vars))
    state = StateStore(ctx.state_file, dry_run=ctx.dry_run)

    ensure_clean_worktree(ctx)
    check_prerequisites(ctx)

    for unit_id in args.rerun or []:
        if catalog.get(unit_id) is None:
            raise CatalogError(f"Unknown unit id for --rerun: {unit_id}")
        state.clear(unit_id)

    plan = build_plan(catalog.units, ctx, state, phase=args.phase, only=args.only)
    mode = "dry-run" if ctx.dry_run else "run"
    _log.info(
        "Plan (%s, profile=%s): %d unit(s), %d skipped",
        mode,
        ctx.stack_profile,
        len(plan.steps),
        len(plan.skipped),
    )
    for step in plan.steps:
        _log.debug("  %3d  phase %d  %s", step.position + 1, step.phase, step.unit_id)

    metrics = RunMetrics()
    driver = ExecutionDriver(ctx, state, metrics=metrics)
    try:
        driver.run(plan)
    finally:
        if driver.summary is not None:
            print("Recap:")
            for line in driver.summary.recap_lines():
                print(line)
        metrics_file = ctx.get("METRICS_FILE")
        metrics.write(ctx.project_root / metrics_file if metrics_file else None)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    ctx = _context(args)
    catalog = _catalog(ctx)
    for unit in sorted(catalog.units, key=lambda u: (u.phase, u.declaration_index)):
        off = disabled_tags(unit.profile_tags, ctx.toggles)
        flag = "disabled" if off else "enabled"
        tags = ",".join(unit.profile_tags) or "-"
        deps = ",".join(unit.dependencies) or "-"
        print(f"{unit.phase:>3}  {flag:<8}  {unit.id:<40} tags={tags} deps={deps}")
    if catalog.failures:
        print(f"{len(catalog.failures)} unit(s) excluded; run 'bootforge lint' for details")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    ctx = _context(args)
    catalog = _catalog(ctx)
    state = StateStore(ctx.state_file, dry_run=True)
    done = {r.unit_id: r.ts for r in state.completed()}

    print(f"Project:  {ctx.project_root}")
    print(f"Profile:  {ctx.stack_profile}")
    print(f"Ledger:   {ctx.state_file} ({len(done)} recorded)")
    for unit in sorted(catalog.units, key=lambda u: (u.phase, u.declaration_index)):
        if unit.id in done:
            status, note = "done", done[unit.id]
        elif disabled_tags(unit.profile_tags, ctx.toggles):
            status, note = "disabled", ""
        else:
            status, note = "pending", ""
        print(f"{unit.phase:>3}  {status:<8}  {unit.id:<40} {note}".rstrip())

    unknown = sorted(set(done) - set(catalog.ids()))
    for unit_id in unknown:
        print(f"  ?  recorded  {unit_id} (not in catalog)")
    return 0


def cmd_lint(args: argparse.Namespace) -> int:
    ctx = _context(args)
    catalog = _catalog(ctx)
    for failure in catalog.failures:
        print(f"ERROR   {failure.describe()}")
    for warning in catalog.warnings:
        print(f"WARN    {warning.describe()}")
    print(f"{len(catalog.units)} valid, {len(catalog.failures)} invalid, {len(catalog.warnings)} warning(s)")
    return 0 if catalog.ok else CatalogError.exit_code


def cmd_reset(args: argparse.Namespace) -> int:
    ctx = _context(args)
    result = execute_reset(ctx, confirmed=args.yes)
    if result.status == "completed" and result.backup is not None:
        print(f"Backup: {result.backup.path}")
    return 0


def cmd_forge(args: argparse.Namespace) -> int:
    ctx = _context(args)
    report = forge(ctx)
    for step in report.steps:
        print(f"  {step.status:<8} {step.name:<10} {shlex.join(step.command)}")
    return 0


def cmd_act(args: argparse.Namespace) -> int:
    actions = UnitActions.from_env()
    if args.dry_run:
        actions.dry_run = True

    if args.action == "run":
        argv = list(args.argv)
        if argv and argv[0] == "--":
            argv = argv[1:]
        actions.run_cmd(argv)
    elif args.action == "mkdir":
        for path in args.paths:
            actions.ensure_dir(path)
    elif args.action == "write":
        content = args.content if args.content is not None else sys.stdin.read()
        actions.write_file(args.path, content, overwrite=not args.if_missing)
    elif args.action == "rm":
        for path in args.paths:
            actions.remove_path(path)
    return 0


# ---------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------

def _add_common(p: argparse.ArgumentParser, nested: bool) -> None:
    # Subcommands repeat the global flags; SUPPRESS keeps them from
    # resetting a value given before the subcommand.
    default = argparse.SUPPRESS if nested else False
    p.add_argument("-n", "--dry-run", action="store_true", default=default, help="Log actions without mutating anything")
    p.add_argument("-v", "--verbose", action="store_true", default=default, help="Debug logging; echo failing commands")
    p.add_argument("--non-interactive", action="store_true", default=default, help="Never prompt (also NON_INTERACTIVE/CI)")
    p.add_argument("--root", default=argparse.SUPPRESS if nested else None, help="Project root directory")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="bootforge", description="Declarative, resumable project bootstrap engine")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _add_common(ap, nested=False)
    sub = ap.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p = sub.add_parser("run", help="Execute the plan")
    _add_common(p, nested=True)
    p.add_argument("-p", "--phase", type=int, default=None, help="Only run units of this phase")
    p.add_argument("-f", "--force", action="store_true", help="Re-run units already recorded as successful")
    p.add_argument("--rerun", action="append", metavar="UNIT", help="Clear the ledger entry of UNIT before planning")
    p.add_argument("--only", action="append", metavar="UNIT", help="Plan only the given unit(s)")
    p.set_defaults(func=cmd_run)

    p = sub.add_parser("list", help="List the catalog")
    _add_common(p, nested=True)
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("status", help="Show completion state per unit")
    _add_common(p, nested=True)
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("lint", help="Validate unit metadata")
    _add_common(p, nested=True)
    p.set_defaults(func=cmd_lint)

    p = sub.add_parser("reset", help="Back up, delete generated files and clear state")
    _add_common(p, nested=True)
    p.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    p.set_defaults(func=cmd_reset)

    for name in ("build", "forge", "compile"):
        p = sub.add_parser(name, help="Verify the provisioned project: install, lint, typecheck, build")
        _add_common(p, nested=True)
        p.set_defaults(func=cmd_forge)

    p = sub.add_parser("act", help="Execute-or-log primitive for shell units")
    _add_common(p, nested=True)
    acts = p.add_subparsers(dest="action", metavar="ACTION")
    acts.required = True
    a = acts.add_parser("run", help="Run a command (argv after --)")
    a.add_argument("argv", nargs=argparse.REMAINDER)
    a = acts.add_parser("mkdir", help="Create directories")
    a.add_argument("paths", nargs="+")
    a = acts.add_parser("write", help="Write a file from --content or stdin")
    a.add_argument("path")
    a.add_argument("--content", default=None)
    a.add_argument("--if-missing", action="store_true")
    a = acts.add_parser("rm", help="Remove files or directories")
    a.add_argument("paths", nargs="+")
    p.set_defaults(func=cmd_act)

    return ap


def _report(e: BootforgeError, verbose: bool) -> None:
    err = sys.stderr
    print(f"[{e.classification}] {e.message}", file=err)
    for problem in getattr(e, "problems", []) or []:
        print(f"  - {problem}", file=err)
    if e.hint:
        print(f"hint: {e.hint}", file=err)
    if verbose and isinstance(e, ExecutionError) and e.command:
        print(f"command: {shlex.join(e.command)}", file=err)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=bool(args.verbose))
    try:
        return args.func(args)
    except BootforgeError as e:
        _report(e, bool(args.verbose))
        return e.exit_code
    except KeyboardInterrupt:
        print("Interrupted; completed units stay recorded.", file=sys.stderr)
        return 130
