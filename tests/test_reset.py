import json
from datetime import datetime

import pytest

from bootforge.core.reset import execute_reset
from bootforge.core.reset.backup import create_backup, sha256_file
from bootforge.core.reset.paths import classify, guard_reason
from bootforge.core.state.ledger import StateStore


@pytest.fixture()
def provisioned(tmp_path):
    root = tmp_path
    (root / "docs").mkdir()
    (root / "docs" / "notes.md").write_text("keep me", encoding="utf-8")
    (root / "bootforge.conf").write_text('APP_NAME="demo"\n', encoding="utf-8")
    (root / "units").mkdir()
    (root / "units" / "10-a.sh").write_text("echo a\n", encoding="utf-8")
    (root / "_build" / "bootforge").mkdir(parents=True)
    (root / "_build" / "bootforge" / "engine.txt").write_text("engine", encoding="utf-8")

    (root / "package.json").write_text('{"name": "demo"}\n', encoding="utf-8")
    (root / "src" / "lib").mkdir(parents=True)
    (root / "src" / "lib" / "db.ts").write_text("export const db = 1;\n", encoding="utf-8")
    (root / "node_modules" / "left-pad").mkdir(parents=True)
    StateStore(root / ".bootforge_state").mark_success("a")
    return root


def test_classify_lists_generated_and_backup_paths(provisioned, make_ctx):
    plan = classify(make_ctx())

    deleted = {p.name for p in plan.delete}
    backed_up = {p.name for p in plan.backup}
    assert {"package.json", "src", "node_modules"} <= deleted
    assert "docs" not in deleted
    assert {"package.json", "lib", ".bootforge_state"} <= backed_up


def test_confirmed_reset_backs_up_deletes_and_clears_state(provisioned, make_ctx):
    ctx = make_ctx()
    out = []

    result = execute_reset(ctx, confirmed=True, out=out.append)

    assert result.status == "completed"
    assert not (provisioned / "package.json").exists()
    assert not (provisioned / "src").exists()
    assert not (provisioned / "node_modules").exists()
    assert not ctx.state_file.exists()

    assert (provisioned / "docs" / "notes.md").read_text(encoding="utf-8") == "keep me"
    assert (provisioned / "bootforge.conf").exists()
    assert (provisioned / "units" / "10-a.sh").exists()
    assert (provisioned / "_build" / "bootforge" / "engine.txt").exists()

    backup = result.backup.path
    assert backup.parent == provisioned / "_backup"
    assert backup.name.startswith("deployment-")
    manifest = json.loads((backup / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["files"]["package.json"] == sha256_file(backup / "package.json")
    assert "src/lib/db.ts" in manifest["files"]
    assert ".bootforge_state" in manifest["sources"]
    assert any("delete" in line for line in out)


def test_prompt_declined_changes_nothing(provisioned, make_ctx):
    result = execute_reset(make_ctx(), prompt=lambda _: "n", out=lambda _: None)

    assert result.status == "cancelled"
    assert (provisioned / "package.json").exists()
    assert not (provisioned / "_backup").exists()
    assert StateStore(provisioned / ".bootforge_state").has_succeeded("a")


def test_prompt_accepted_resets(provisioned, make_ctx):
    asked = []

    def answer(question):
        asked.append(question)
        return "y"

    result = execute_reset(make_ctx(), prompt=answer, out=lambda _: None)

    assert asked == ["Proceed with reset? [y/N]: "]
    assert result.status == "completed"
    assert not (provisioned / "src").exists()


def test_non_interactive_without_yes_cancels(provisioned, make_ctx):
    def never(_):
        raise AssertionError("must not prompt")

    result = execute_reset(make_ctx(non_interactive=True), prompt=never, out=lambda _: None)

    assert result.status == "cancelled"
    assert (provisioned / "package.json").exists()


def test_dry_run_lists_but_touches_nothing(provisioned, make_ctx):
    out = []
    result = execute_reset(make_ctx(dry_run=True), confirmed=True, out=out.append)

    assert result.status == "dry_run"
    assert (provisioned / "src").exists()
    assert not (provisioned / "_backup").exists()
    assert any(line.startswith("[dry]") for line in out)


def test_configured_generated_paths_cannot_reach_engine_or_units(provisioned, make_ctx):
    ctx = make_ctx(values={"RESET_GENERATED_PATHS": "_build,units,docs"})

    result = execute_reset(ctx, confirmed=True, out=lambda _: None)

    refused = {p.name for p, _ in result.plan.refused}
    assert refused == {"_build", "units", "docs"}
    assert (provisioned / "_build" / "bootforge" / "engine.txt").exists()
    assert (provisioned / "units" / "10-a.sh").exists()
    assert (provisioned / "docs").exists()


def test_guard_reasons(tmp_path, make_ctx):
    ctx = make_ctx()

    assert guard_reason(tmp_path, ctx) == "is the project root"
    assert guard_reason(tmp_path.parent / "elsewhere", ctx) == "is outside the project root"
    assert guard_reason(tmp_path / ".git", ctx).startswith("overlaps preserved path")
    assert guard_reason(tmp_path / "_build", ctx).startswith("overlaps preserved path")
    assert guard_reason(tmp_path / "src", ctx) is None


def test_backup_directories_never_collide(tmp_path):
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    now = datetime(2024, 5, 1, 12, 0, 0)

    first = create_backup(tmp_path, [tmp_path / "a.txt"], now=now)
    second = create_backup(tmp_path, [tmp_path / "a.txt"], now=now)

    assert first.path.name == "deployment-20240501-120000"
    assert second.path.name == "deployment-20240501-120000-1"
    assert first.files == second.files


def test_absolute_extra_patterns_are_ignored(provisioned, make_ctx, caplog):
    outside = provisioned.parent / "outside-reset"
    outside.mkdir(exist_ok=True)
    ctx = make_ctx(values={"RESET_GENERATED_PATHS": f"{outside},node_modules", "RESET_BACKUP_PATHS": "/etc/hosts"})

    plan = classify(ctx)

    assert outside not in plan.delete
    assert provisioned / "node_modules" in plan.delete
    assert all(p.name != "hosts" for p in plan.backup)
    assert "must be relative" in caplog.text
