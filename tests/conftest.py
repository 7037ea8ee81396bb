import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

from bootforge.core.config.models import ExecutionContext
from bootforge.core.profiles.resolver import resolve_toggles


_ENGINE_KEYS = (
    "DRY_RUN",
    "VERBOSE",
    "LOG_FORMAT",
    "MAX_CMD_SECONDS",
    "BOOTSTRAP_RESUME_MODE",
    "GIT_SAFETY",
    "ALLOW_DIRTY",
    "STACK_PROFILE",
    "NON_INTERACTIVE",
    "BOOTFORGE_ROOT",
    "INSTALL_DIR",
    "DB_NAME",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    # Engine keys from the developer shell must not leak into tests.
    for key in _ENGINE_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CI", "true")


def git(repo: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.email=test@example.com", "-c", "user.name=test", *args],
        cwd=str(repo),
        check=True,
        capture_output=True,
    )


@pytest.fixture()
def tmp_repo(tmp_path: Path):
    """
    Provides a temporary git repo with one commit.
    """
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = tmp_path / "repo"
    repo.mkdir(parents=True, exist_ok=True)
    git(repo, "init")
    (repo / "README.md").write_text("x", encoding="utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-m", "init")
    return repo


def unit_source(
    unit_id: str,
    phase: int,
    deps: Iterable[str] = (),
    tags: Iterable[str] = (),
    required: Iterable[str] = (),
    body: Optional[str] = None,
    timeout: Optional[int] = None,
) -> str:
    lines = ["#!/usr/bin/env bash", "#!meta", f"# id: {unit_id}", f"# phase: {phase}"]
    if timeout is not None:
        lines.append(f"# timeout: {timeout}")
    lines.append("# profile_tags:")
    lines.extend(f"#   - {t}" for t in tags)
    lines.append("# dependencies:")
    lines.append("#   units:")
    lines.extend(f"#     - {d}" for d in deps)
    lines.append("# required_vars:")
    lines.extend(f"#   - {r}" for r in required)
    lines.append("#!endmeta")
    lines.append("set -euo pipefail")
    if body is None:
        body = (
            'if [ "$DRY_RUN" = "true" ]; then\n'
            f'  echo "[dry] would append {unit_id} to .ran"\n'
            "else\n"
            f'  echo "{unit_id}" >> "$PROJECT_ROOT/.ran"\n'
            "fi"
        )
    lines.append(body)
    return "\n".join(lines) + "\n"


@pytest.fixture()
def write_unit(tmp_path: Path):
    def _write(rel: str, *args, root: Optional[Path] = None, **kwargs) -> Path:
        base = (root or tmp_path) / "units"
        path = base / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(unit_source(*args, **kwargs), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def write_config(tmp_path: Path):
    def _write(values: Dict[str, str], root: Optional[Path] = None) -> Path:
        path = (root or tmp_path) / "bootforge.conf"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f'{k}="{v}"\n' for k, v in values.items()), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def make_ctx(tmp_path: Path):
    def _make(root: Optional[Path] = None, profile: str = "full", **fields) -> ExecutionContext:
        root = root or tmp_path
        values = dict(fields.pop("values", {}))
        toggles = dict(resolve_toggles(profile, values))
        base = dict(
            project_root=root,
            install_dir=root,
            engine_dir=root / "_build" / "bootforge",
            units_dir=root / "units",
            state_file=root / ".bootforge_state",
            config_file=root / "bootforge.conf",
            stack_profile=profile,
            git_safety=False,
            values=values,
            toggles=toggles,
        )
        base.update(fields)
        return ExecutionContext(**base)

    return _make


def ran(root: Path):
    p = root / ".ran"
    if not p.exists():
        return []
    return p.read_text(encoding="utf-8").split()


@pytest.fixture()
def ran_units():
    return ran
