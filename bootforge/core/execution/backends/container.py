from __future__ import annotations

import logging
import re
import subprocess
from typing import Dict, List

from bootforge.core.catalog.models import Unit
from bootforge.core.config.models import ExecutionContext

from .base import ExecutionBackend, interpreter_for


_log = logging.getLogger("bootforge.execution")

DEFAULT_IMAGE = "node:20-bookworm"


def container_name(unit: Unit) -> str:
    return "bootforge-" + re.sub(r"[^a-zA-Z0-9_.-]", "-", unit.id)


class ContainerBackend(ExecutionBackend):
    """Re-executes each unit inside ``<runtime> run --rm`` with the project mounted."""

    name = "container"

    def __init__(self, runtime: str = "docker"):
        self.runtime = runtime

    def command_for(self, unit: Unit, ctx: ExecutionContext, env: Dict[str, str]) -> List[str]:
        image = ctx.get("CONTAINER_IMAGE") or DEFAULT_IMAGE
        root = str(ctx.project_root)
        workdir = str(ctx.install_dir if ctx.install_dir.is_dir() else ctx.project_root)

        cmd = [self.runtime, "run", "--rm", "--init", "--name", container_name(unit)]
        cmd += ["-v", f"{root}:{root}", "-w", workdir]
        # Only context keys cross into the container, never the host environment.
        for key in sorted(set(ctx.as_env(base={})) | {"BOOTFORGE_UNIT_ID"}):
            if key in env:
                cmd += ["-e", key]
        cmd.append(image)
        cmd += interpreter_for(unit.source, python="python3")
        return cmd

    def on_timeout(self, unit: Unit) -> None:
        r = subprocess.run(
            [self.runtime, "rm", "-f", container_name(unit)],
            capture_output=True,
            text=True,
        )
        if r.returncode != 0:
            _log.debug("%s rm -f failed: %s", self.runtime, (r.stderr or r.stdout).strip())
