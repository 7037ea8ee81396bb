from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from bootforge.errors import ExecutionError

from .paths import BACKUP_DIR_NAME


_log = logging.getLogger("bootforge.reset")

MANIFEST_NAME = "manifest.json"


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


@dataclass(frozen=True)
class BackupRecord:
    path: Path
    created_ts: str
    sources: List[str] = field(default_factory=list)
    files: Dict[str, str] = field(default_factory=dict)


def _backup_dir(project_root: Path, now: datetime) -> Path:
    base = project_root / BACKUP_DIR_NAME / f"deployment-{now.strftime('%Y%m%d-%H%M%S')}"
    candidate = base
    n = 1
    while candidate.exists():
        candidate = base.with_name(f"{base.name}-{n}")
        n += 1
    return candidate


def _rel(path: Path, project_root: Path) -> str:
    try:
        return path.relative_to(project_root).as_posix()
    except ValueError:
        return path.name


def create_backup(project_root: Path, sources: List[Path], now: Optional[datetime] = None) -> BackupRecord:
    """Copy ``sources`` into a new timestamped backup directory with a manifest.

    Backups are never modified or pruned afterwards.
    """
    now = now or datetime.now()
    dest = _backup_dir(project_root, now)
    files: Dict[str, str] = {}
    rels: List[str] = []

    try:
        dest.mkdir(parents=True)
        for src in sources:
            rel = _rel(src, project_root)
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            if src.is_dir() and not src.is_symlink():
                shutil.copytree(src, target, symlinks=True)
            else:
                shutil.copy2(src, target, follow_symlinks=False)
            rels.append(rel)

        for p in sorted(dest.rglob("*")):
            if p.is_file() and not p.is_symlink():
                files[p.relative_to(dest).as_posix()] = sha256_file(p)

        record = BackupRecord(
            path=dest,
            created_ts=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            sources=rels,
            files=files,
        )
        (dest / MANIFEST_NAME).write_text(
            json.dumps(
                {
                    "created_ts": record.created_ts,
                    "project_root": str(project_root),
                    "sources": record.sources,
                    "files": record.files,
                },
                indent=2,
                sort_keys=True,
            )
            + "\n",
            encoding="utf-8",
        )
    except OSError as e:
        raise ExecutionError(
            f"Backup into {dest} failed: {e}",
            hint="Nothing was deleted. Free space or fix permissions, then retry the reset.",
        ) from e

    _log.info("Backed up %d path(s) to %s", len(rels), dest)
    return record
