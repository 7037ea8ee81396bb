from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from bootforge.core.catalog.models import Unit
from bootforge.core.config.models import ExecutionContext
from bootforge.core.profiles.resolver import disabled_tags
from bootforge.core.state.ledger import StateStore
from bootforge.errors import CatalogError

from .graph import CircularDependencyError, UnitGraph, UnitNode
from .models import ExecutionPlan, PlanStep, SkippedUnit


_log = logging.getLogger("bootforge.scheduler")


def _phase_graph(units: Iterable[Unit]) -> UnitGraph:
    g = UnitGraph()
    for u in units:
        g.add_node(UnitNode(unit_id=u.id, declaration_index=u.declaration_index, depends_on=list(u.dependencies)))
    return g


def _group_by_phase(units: Iterable[Unit]) -> Dict[int, List[Unit]]:
    out: Dict[int, List[Unit]] = {}
    for u in sorted(units, key=lambda x: x.declaration_index):
        out.setdefault(u.phase, []).append(u)
    return dict(sorted(out.items()))


def validate_catalog(units: Sequence[Unit]) -> None:
    """Reject unknown, forward and circular dependencies across the whole catalog."""
    by_id = {u.id: u for u in units}
    problems: List[str] = []

    for u in units:
        for dep in u.dependencies:
            target = by_id.get(dep)
            if target is None:
                problems.append(f"{u.id} depends on unknown unit '{dep}'")
            elif target.phase > u.phase:
                problems.append(
                    f"{u.id} (phase {u.phase}) depends on {dep} from later phase {target.phase}"
                )

    for phase, members in _group_by_phase(units).items():
        try:
            _phase_graph(members).topological_sort()
        except CircularDependencyError as e:
            problems.append(f"phase {phase}: {e}")

    if problems:
        raise CatalogError(
            "Invalid unit dependencies",
            hint="A unit may only depend on existing units in the same or an earlier phase, without cycles.",
            problems=problems,
        )


def build_plan(
    units: Sequence[Unit],
    ctx: ExecutionContext,
    state: StateStore,
    *,
    phase: Optional[int] = None,
    only: Optional[Sequence[str]] = None,
) -> ExecutionPlan:
    """Order the runnable units: ascending phase, topological within a phase.

    Units are excluded when a profile tag maps to a disabled feature, when they
    already succeeded and resume mode is ``skip``, or when they fall outside the
    requested phase / selection. A planned unit with an unresolved required
    variable is a CatalogError.
    """
    validate_catalog(units)

    selected = set(only) if only else None
    if selected:
        unknown = sorted(selected - {u.id for u in units})
        if unknown:
            raise CatalogError("Unknown unit ids requested: " + ", ".join(unknown))

    planned: List[Unit] = []
    skipped: List[SkippedUnit] = []

    for u in sorted(units, key=lambda x: x.declaration_index):
        if selected is not None and u.id not in selected:
            skipped.append(SkippedUnit(u.id, u.phase, "not_selected"))
            continue
        if phase is not None and u.phase != phase:
            skipped.append(SkippedUnit(u.id, u.phase, "phase_filtered"))
            continue
        off = disabled_tags(u.profile_tags, ctx.toggles)
        if off:
            skipped.append(SkippedUnit(u.id, u.phase, "profile_disabled", "disabled: " + ", ".join(off)))
            continue
        if ctx.resume_mode == "skip" and state.has_succeeded(u.id):
            skipped.append(SkippedUnit(u.id, u.phase, "already_succeeded"))
            continue
        planned.append(u)

    unresolved = [
        f"{u.id} requires {var}"
        for u in planned
        for var in u.required_vars
        if not ctx.is_resolved(var)
    ]
    if unresolved:
        raise CatalogError(
            "Unresolved required variables",
            hint="Set the listed variables in bootforge.conf or the environment.",
            problems=unresolved,
        )

    excluded = {s.unit_id: s for s in skipped if s.reason == "profile_disabled"}
    for u in planned:
        for dep in u.dependencies:
            if dep in excluded:
                _log.warning("%s depends on %s, which the '%s' profile excludes", u.id, dep, ctx.stack_profile)

    steps: List[PlanStep] = []
    for _, members in _group_by_phase(planned).items():
        by_id = {m.id: m for m in members}
        for unit_id in _phase_graph(members).topological_sort():
            steps.append(PlanStep(position=len(steps), unit=by_id[unit_id]))

    plan = ExecutionPlan(stack_profile=ctx.stack_profile, steps=steps, skipped=skipped)
    _log.debug("Plan %s: %d steps, %d skipped", plan.compute_plan_id()[:12], len(steps), len(skipped))
    return plan
