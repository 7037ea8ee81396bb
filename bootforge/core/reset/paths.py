from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import bootforge
from bootforge.core.config.loader import CONFIG_NAME
from bootforge.core.config.models import ExecutionContext


_log = logging.getLogger("bootforge.reset")

BACKUP_DIR_NAME = "_backup"

# Relative to the project root.
PRESERVE_NAMES: Tuple[str, ...] = ("docs", ".git", BACKUP_DIR_NAME, CONFIG_NAME, "profiles")

# Relative to the install directory.
GENERATED_FILES: Tuple[str, ...] = (
    "package.json",
    "tsconfig.json",
    "next.config.ts",
    "docker-compose.yml",
    "drizzle.config.ts",
    "playwright.config.ts",
    "vitest.config.ts",
    ".env.example",
    "tsconfig.tsbuildinfo",
    "next-env.d.ts",
    "pnpm-lock.yaml",
    "package-lock.json",
    "yarn.lock",
)
GENERATED_DIRS: Tuple[str, ...] = (
    "src",
    "e2e",
    "public",
    "logs",
    ".next",
    "node_modules",
    "test-results",
    "playwright-report",
)

# Generated, but not trivially regenerated: copied into the backup first.
BACKUP_CANDIDATES: Tuple[str, ...] = (
    "package.json",
    "tsconfig.json",
    ".env.local",
    "logs/deployment-manifest.log",
    "src/lib",
)


def _abs(path: Path) -> Path:
    # Normalize without following symlinks; a link is deleted, not its target.
    return Path(os.path.abspath(path))


def _overlaps(a: Path, b: Path) -> bool:
    return a == b or b in a.parents or a in b.parents


def engine_package_dir() -> Path:
    return Path(bootforge.__file__).resolve().parent


@dataclass
class ResetPlan:
    project_root: Path
    install_dir: Path
    preserve: List[Path] = field(default_factory=list)
    delete: List[Path] = field(default_factory=list)
    backup: List[Path] = field(default_factory=list)
    refused: List[Tuple[Path, str]] = field(default_factory=list)


def protected_paths(ctx: ExecutionContext) -> List[Path]:
    root = _abs(ctx.project_root)
    paths = [
        _abs(ctx.engine_dir),
        engine_package_dir(),
        _abs(ctx.units_dir),
    ]
    if ctx.config_file is not None:
        paths.append(_abs(ctx.config_file))
    paths.extend(root / name for name in PRESERVE_NAMES)
    return list(dict.fromkeys(paths))


def guard_reason(path: Path, ctx: ExecutionContext, protected: Optional[List[Path]] = None) -> Optional[str]:
    """Why ``path`` must never be deleted, or None when it is safe.

    Independent of the generated-path tables: any path that is, contains or
    sits inside a preserved path is refused, as is anything outside the root.
    """
    candidate = _abs(path)
    root = _abs(ctx.project_root)
    if candidate == root:
        return "is the project root"
    if root not in candidate.parents:
        return "is outside the project root"
    resolved = candidate.resolve()
    for keep in protected if protected is not None else protected_paths(ctx):
        if _overlaps(candidate, keep) or _overlaps(resolved, keep.resolve()):
            return f"overlaps preserved path {keep}"
    return None


def _extra(ctx: ExecutionContext, key: str) -> List[Path]:
    out: List[Path] = []
    for pattern in ctx.list_value(key):
        if os.path.isabs(os.path.expanduser(pattern)):
            _log.warning("Ignoring %s entry %s: must be relative to %s", key, pattern, ctx.install_dir)
            continue
        matches = sorted(ctx.install_dir.glob(pattern))
        out.extend(matches)
    return out


def classify(ctx: ExecutionContext) -> ResetPlan:
    root = _abs(ctx.project_root)
    install = _abs(ctx.install_dir)
    protected = protected_paths(ctx)
    plan = ResetPlan(project_root=root, install_dir=install, preserve=[p for p in protected if p.exists()])

    candidates: List[Path] = []
    if install != root:
        candidates.append(install)
    candidates.extend(install / name for name in GENERATED_FILES)
    candidates.extend(install / name for name in GENERATED_DIRS)
    candidates.extend(_abs(p) for p in _extra(ctx, "RESET_GENERATED_PATHS"))

    for path in dict.fromkeys(candidates):
        if not (path.exists() or path.is_symlink()):
            continue
        reason = guard_reason(path, ctx, protected)
        if reason is not None:
            plan.refused.append((path, reason))
            _log.warning("Refusing to delete %s: %s", path, reason)
            continue
        plan.delete.append(path)

    backup = [install / name for name in BACKUP_CANDIDATES]
    backup.append(_abs(ctx.state_file))
    backup.extend(_abs(p) for p in _extra(ctx, "RESET_BACKUP_PATHS"))
    plan.backup = [p for p in dict.fromkeys(backup) if p.exists()]
    return plan
