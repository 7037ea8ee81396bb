from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from bootforge.core.profiles.models import FEATURE_KEYS


LogFormat = Literal["plain", "json"]
ResumeMode = Literal["skip", "rerun"]
ExecBackendName = Literal["local", "container"]

TRUE_VALUES = ("true", "1", "yes", "on")


def _b(v: bool) -> str:
    return "true" if v else "false"


class ExecutionContext(BaseModel):
    """Immutable per-invocation bundle handed to every component.

    ``values`` carries every resolved configuration key. The typed fields are
    the operational subset the engine itself interprets.
    """

    model_config = ConfigDict(frozen=True)

    project_root: Path
    install_dir: Path
    engine_dir: Path
    units_dir: Path
    state_file: Path
    config_file: Optional[Path] = None

    dry_run: bool = False
    verbose: bool = False
    non_interactive: bool = False
    stack_profile: str = "full"
    git_safety: bool = True
    allow_dirty: bool = False
    max_cmd_seconds: int = Field(default=900, ge=0)
    log_format: LogFormat = "plain"
    resume_mode: ResumeMode = "skip"
    exec_backend: ExecBackendName = "local"

    values: Dict[str, str] = Field(default_factory=dict)
    toggles: Dict[str, bool] = Field(default_factory=dict)

    # ---------------------------------------------------------------------
    # Lookups
    # ---------------------------------------------------------------------

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def is_resolved(self, key: str) -> bool:
        return bool(str(self.values.get(key, "")).strip())

    def list_value(self, key: str, default: str = "") -> List[str]:
        raw = self.values.get(key, default) or ""
        return [x.strip() for x in raw.replace(";", ",").split(",") if x.strip()]

    def with_overrides(self, **changes: Any) -> "ExecutionContext":
        return self.model_copy(update=changes)

    # ---------------------------------------------------------------------
    # Child-process environment
    # ---------------------------------------------------------------------

    def as_env(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env: Dict[str, str] = dict(os.environ if base is None else base)
        env.update({k: str(v) for k, v in self.values.items()})
        env.update(
            {
                "PROJECT_ROOT": str(self.project_root),
                "INSTALL_DIR": str(self.install_dir),
                "ENGINE_DIR": str(self.engine_dir),
                "UNITS_DIR": str(self.units_dir),
                "BOOTSTRAP_STATE_FILE": str(self.state_file),
                "DRY_RUN": _b(self.dry_run),
                "VERBOSE": _b(self.verbose),
                "NON_INTERACTIVE": _b(self.non_interactive),
                "STACK_PROFILE": self.stack_profile,
                "GIT_SAFETY": _b(self.git_safety),
                "ALLOW_DIRTY": _b(self.allow_dirty),
                "MAX_CMD_SECONDS": str(self.max_cmd_seconds),
                "LOG_FORMAT": self.log_format,
                "BOOTSTRAP_RESUME_MODE": self.resume_mode,
                "EXEC_BACKEND": self.exec_backend,
                "BOOTFORGE_PYTHON": sys.executable,
            }
        )
        for feature, key in FEATURE_KEYS.items():
            env[key] = _b(self.toggles.get(feature, True))
        return env
