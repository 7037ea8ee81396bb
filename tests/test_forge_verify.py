import pytest

from bootforge.core.verify.forge import forge, forge_command, FORGE_STEPS
from bootforge.errors import ExecutionError, PreconditionError


PASSING = {
    "FORGE_INSTALL_CMD": "true",
    "FORGE_LINT_CMD": "true",
    "FORGE_TYPECHECK_CMD": "true",
    "FORGE_BUILD_CMD": "true",
}


def test_default_commands_use_package_manager(make_ctx):
    ctx = make_ctx(values={"PACKAGE_MANAGER": "npm"})

    assert [forge_command(ctx, s) for s in FORGE_STEPS] == [
        ["npm", "install"],
        ["npm", "run", "lint"],
        ["npm", "run", "typecheck"],
        ["npm", "run", "build"],
    ]


def test_dry_run_only_logs(make_ctx, caplog):
    caplog.set_level("INFO", logger="bootforge")

    report = forge(make_ctx(dry_run=True), which=lambda _: None)

    assert [s.status for s in report.steps] == ["dry_run"] * 4
    assert "[dry] install: pnpm install" in caplog.text


def test_all_steps_pass(make_ctx):
    report = forge(make_ctx(values=PASSING))

    assert report.ok
    assert [s.status for s in report.steps] == ["passed"] * 4


def test_lint_failure_is_only_a_warning(make_ctx):
    values = dict(PASSING, FORGE_LINT_CMD='bash -c "exit 1"')

    report = forge(make_ctx(values=values))

    assert report.ok
    assert report.warnings == ["lint"]
    assert report.steps[-1].status == "passed"


def test_build_failure_is_fatal(make_ctx):
    values = dict(PASSING, FORGE_BUILD_CMD='bash -c "exit 2"')

    with pytest.raises(ExecutionError) as exc:
        forge(make_ctx(values=values))

    assert exc.value.returncode == 2
    assert exc.value.message == "forge build exited with code 2"


def test_missing_package_manager(make_ctx):
    with pytest.raises(PreconditionError) as exc:
        forge(make_ctx(), which=lambda _: None)

    assert "'pnpm' not found" in exc.value.message


def test_missing_install_dir(tmp_path, make_ctx):
    with pytest.raises(PreconditionError):
        forge(make_ctx(install_dir=tmp_path / "not-yet"), which=lambda name: name)
