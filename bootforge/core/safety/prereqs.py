from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bootforge.core.config.models import ExecutionContext
from bootforge.errors import PreconditionError


_log = logging.getLogger("bootforge.safety")


@dataclass
class PrereqReport:
    missing_required: List[str] = field(default_factory=list)
    missing_optional: List[str] = field(default_factory=list)


def check_prerequisites(
    ctx: ExecutionContext,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> PrereqReport:
    required = ctx.list_value("REQUIRED_TOOLS", "bash")
    optional = ctx.list_value("OPTIONAL_TOOLS")
    if ctx.exec_backend == "container":
        required.append(ctx.get("CONTAINER_RUNTIME") or "docker")

    report = PrereqReport(
        missing_required=[t for t in dict.fromkeys(required) if which(t) is None],
        missing_optional=[t for t in dict.fromkeys(optional) if which(t) is None],
    )

    for tool in report.missing_optional:
        _log.warning("Optional tool not found on PATH: %s", tool)

    if report.missing_required:
        names = ", ".join(report.missing_required)
        if ctx.dry_run:
            _log.warning("Required tools missing (ignored in dry-run): %s", names)
        else:
            raise PreconditionError(
                f"Required tools not found on PATH: {names}",
                hint="Install them or adjust REQUIRED_TOOLS in bootforge.conf.",
            )
    return report
