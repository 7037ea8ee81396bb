"""Execute-or-log primitives shared by every unit.

Units never branch on DRY_RUN themselves: they call these helpers, which
perform the action normally and only log it when ``DRY_RUN=true``. Python
units import :class:`UnitActions`; shell units call ``bootforge act ...``.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from bootforge.errors import ExecutionError, PreconditionError


_log = logging.getLogger("bootforge.unit")


class UnitActions:
    def __init__(
        self,
        dry_run: bool,
        install_dir: Path,
        unit_id: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.dry_run = dry_run
        self.install_dir = install_dir
        self.unit_id = unit_id
        self.env: Dict[str, str] = dict(os.environ if env is None else env)
        self.actions: List[str] = []

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "UnitActions":
        env = os.environ if env is None else env
        install_dir = Path(env.get("INSTALL_DIR") or env.get("PROJECT_ROOT") or ".").resolve()
        return cls(
            dry_run=(env.get("DRY_RUN", "false").lower() == "true"),
            install_dir=install_dir,
            unit_id=env.get("BOOTFORGE_UNIT_ID"),
            env=env,
        )

    def _resolve(self, path: Union[Path, str]) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.install_dir / p

    def _note(self, action: str) -> bool:
        """Record ``action``; returns True when it must actually be performed."""
        self.actions.append(action)
        extra = {"unit": self.unit_id} if self.unit_id else None
        if self.dry_run:
            _log.info("[dry] %s", action, extra=extra)
            return False
        _log.debug("%s", action, extra=extra)
        return True

    # ---------------------------------------------------------------------
    # Actions
    # ---------------------------------------------------------------------

    def run_cmd(self, argv: Sequence[str], cwd: Optional[Path] = None, timeout: Optional[float] = None) -> int:
        if not argv:
            raise PreconditionError("run_cmd requires a command")
        where = self._resolve(cwd) if cwd is not None else self.install_dir
        if not self._note(f"run: {shlex.join(argv)} (in {where})"):
            return 0
        try:
            p = subprocess.run(list(argv), cwd=str(where), env=self.env, timeout=timeout)
        except FileNotFoundError as e:
            raise PreconditionError(f"Command not found: {argv[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(f"Command timed out: {shlex.join(argv)}", command=list(argv), timed_out=True) from e
        if p.returncode != 0:
            raise ExecutionError(
                f"Command failed with exit code {p.returncode}: {shlex.join(argv)}",
                returncode=p.returncode,
                command=list(argv),
            )
        return p.returncode

    def ensure_dir(self, path: Union[Path, str]) -> Path:
        target = self._resolve(path)
        if target.is_dir():
            return target
        if self._note(f"mkdir: {target}"):
            target.mkdir(parents=True, exist_ok=True)
        return target

    def write_file(self, path: Union[Path, str], content: str, overwrite: bool = True) -> bool:
        """Write ``content``. Returns False when nothing needed writing."""
        target = self._resolve(path)
        if target.exists():
            if not overwrite:
                _log.debug("exists, kept: %s", target)
                return False
            if target.is_file() and target.read_text(encoding="utf-8", errors="replace") == content:
                return False
        if self._note(f"write: {target} ({len(content.encode('utf-8'))} bytes)"):
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return True

    def write_file_if_missing(self, path: Union[Path, str], content: str) -> bool:
        return self.write_file(path, content, overwrite=False)

    def remove_path(self, path: Union[Path, str]) -> bool:
        target = self._resolve(path)
        if not target.exists() and not target.is_symlink():
            return False
        if self._note(f"remove: {target}"):
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        return True
