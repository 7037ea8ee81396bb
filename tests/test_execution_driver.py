import logging

import pytest

from bootforge.core.catalog.registry import CatalogRegistry
from bootforge.core.execution.driver import ExecutionDriver
from bootforge.core.scheduler.planner import build_plan
from bootforge.core.state.ledger import StateStore
from bootforge.errors import ExecutionError


def _run(ctx):
    catalog = CatalogRegistry(ctx.units_dir).load()
    state = StateStore(ctx.state_file, dry_run=ctx.dry_run)
    plan = build_plan(catalog.units, ctx, state)
    driver = ExecutionDriver(ctx, state)
    return driver, plan


def test_runs_in_order_and_records_success(tmp_path, write_unit, make_ctx, ran_units):
    write_unit("10-a.sh", "a", 0)
    write_unit("20-b.sh", "b", 1, deps=["a"])
    ctx = make_ctx()

    driver, plan = _run(ctx)
    summary = driver.run(plan)

    assert ran_units(tmp_path) == ["a", "b"]
    assert summary.ids_with("succeeded") == ["a", "b"]
    state = StateStore(ctx.state_file)
    assert state.has_succeeded("a") and state.has_succeeded("b")


def test_second_run_executes_nothing(tmp_path, write_unit, make_ctx, ran_units):
    write_unit("10-a.sh", "a", 0)
    ctx = make_ctx()

    driver, plan = _run(ctx)
    driver.run(plan)
    driver, plan = _run(ctx)
    summary = driver.run(plan)

    assert ran_units(tmp_path) == ["a"]
    assert summary.executed == []
    assert [s.reason for s in plan.skipped] == ["already_succeeded"]


def test_failure_stops_run_and_resume_continues_at_failed_unit(tmp_path, write_unit, make_ctx, ran_units):
    flaky = (
        f'if [ -f "{tmp_path}/break-b" ]; then echo "b is broken" >&2; exit 3; fi\n'
        'echo b >> "$PROJECT_ROOT/.ran"'
    )
    write_unit("10-a.sh", "a", 0)
    write_unit("20-b.sh", "b", 1, body=flaky)
    write_unit("30-c.sh", "c", 2)
    (tmp_path / "break-b").write_text("", encoding="utf-8")
    ctx = make_ctx()

    driver, plan = _run(ctx)
    with pytest.raises(ExecutionError) as exc:
        driver.run(plan)

    assert exc.value.unit_id == "b"
    assert exc.value.returncode == 3
    assert exc.value.hint
    assert ran_units(tmp_path) == ["a"]
    assert driver.summary.ids_with("failed") == ["b"]
    assert StateStore(ctx.state_file).has_succeeded("b") is False

    (tmp_path / "break-b").unlink()
    driver, plan = _run(ctx)
    assert plan.unit_ids() == ["b", "c"]
    driver.run(plan)

    assert ran_units(tmp_path) == ["a", "b", "c"]


def test_unit_timeout_kills_the_process(tmp_path, write_unit, make_ctx):
    write_unit("10-slow.sh", "slow", 0, body="sleep 30", timeout=1)
    ctx = make_ctx()

    driver, plan = _run(ctx)
    with pytest.raises(ExecutionError) as exc:
        driver.run(plan)

    assert exc.value.timed_out is True
    assert "timed out after 1s" in exc.value.message
    assert driver.summary.ids_with("timed_out") == ["slow"]
    assert driver.summary.results[0].duration_seconds < 20


def test_context_is_injected_as_environment(tmp_path, write_unit, make_ctx):
    body = 'echo "$APP_NAME|$BOOTFORGE_UNIT_ID|$ENABLE_AUTHJS|$STACK_PROFILE" > "$PROJECT_ROOT/env.out"'
    write_unit("10-env.sh", "env", 0, body=body)
    ctx = make_ctx(profile="minimal", values={"APP_NAME": "demo"})

    driver, plan = _run(ctx)
    driver.run(plan)

    out = (tmp_path / "env.out").read_text(encoding="utf-8").strip()
    assert out == "demo|env|false|minimal"


def test_dry_run_mutates_nothing(tmp_path, write_unit, make_ctx, ran_units, caplog):
    write_unit("10-a.sh", "a", 0)
    write_unit("20-b.sh", "b", 1)
    ctx = make_ctx(dry_run=True)

    caplog.set_level(logging.INFO, logger="bootforge")
    driver, plan = _run(ctx)
    summary = driver.run(plan)

    assert summary.ids_with("succeeded") == ["a", "b"]
    assert ran_units(tmp_path) == []
    assert not ctx.state_file.exists()
    assert "[dry] would append a to .ran" in caplog.text
    assert "[dry] would record a=success" in caplog.text


def test_python_unit_uses_action_primitives(tmp_path, make_ctx):
    units = tmp_path / "units"
    units.mkdir()
    (units / "10-hello.py").write_text(
        "#!meta\n"
        "# id: hello\n"
        "# phase: 0\n"
        "# profile_tags: []\n"
        "# dependencies: []\n"
        "# required_vars: []\n"
        "#!endmeta\n"
        "from bootforge.core.execution.primitives import UnitActions\n"
        "act = UnitActions.from_env()\n"
        "act.ensure_dir('generated')\n"
        "act.write_file('generated/hello.txt', 'hi\\n')\n",
        encoding="utf-8",
    )

    driver, plan = _run(make_ctx(dry_run=True))
    driver.run(plan)
    assert not (tmp_path / "generated").exists()

    driver, plan = _run(make_ctx())
    driver.run(plan)
    assert (tmp_path / "generated" / "hello.txt").read_text(encoding="utf-8") == "hi\n"


def test_skipped_units_appear_in_summary(tmp_path, write_unit, make_ctx):
    write_unit("10-core.sh", "core", 0, tags=["core"])
    write_unit("20-ai.sh", "ai", 1, tags=["ai"])
    ctx = make_ctx(profile="minimal")

    driver, plan = _run(ctx)
    summary = driver.run(plan)

    assert summary.ids_with("skipped") == ["ai"]
    assert driver.metrics.count("skipped") == 1
    assert driver.metrics.count("succeeded") == 1


def test_resume_within_a_phase(tmp_path, write_unit, make_ctx, ran_units):
    flaky = (
        f'if [ -f "{tmp_path}/break-b" ]; then exit 1; fi\n'
        'echo b >> "$PROJECT_ROOT/.ran"'
    )
    write_unit("10-a.sh", "a", 0)
    write_unit("11-b.sh", "b", 0, body=flaky)
    write_unit("20-c.sh", "c", 1)
    (tmp_path / "break-b").write_text("", encoding="utf-8")
    ctx = make_ctx()

    driver, plan = _run(ctx)
    assert plan.unit_ids() == ["a", "b", "c"]
    with pytest.raises(ExecutionError):
        driver.run(plan)
    assert ran_units(tmp_path) == ["a"]

    (tmp_path / "break-b").unlink()
    driver, plan = _run(ctx)
    assert plan.unit_ids() == ["b", "c"]
    summary = driver.run(plan)

    assert summary.ids_with("succeeded") == ["b", "c"]
    assert ran_units(tmp_path) == ["a", "b", "c"]


def test_unit_that_cannot_start_is_an_execution_error(tmp_path, make_ctx):
    units = tmp_path / "units"
    units.mkdir()
    (units / "setup").write_text("echo never\n", encoding="utf-8")
    (units / "catalog.yaml").write_text(
        "units:\n"
        "  - id: setup\n"
        "    phase: 0\n"
        "    script: setup\n"
        "    profile_tags: []\n"
        "    dependencies: []\n"
        "    required_vars: []\n",
        encoding="utf-8",
    )
    ctx = make_ctx()

    driver, plan = _run(ctx)
    with pytest.raises(ExecutionError) as exc:
        driver.run(plan)

    assert exc.value.unit_id == "setup"
    assert "could not be started" in exc.value.message
    assert exc.value.command == [str((units / "setup").resolve())]
    assert driver.summary.ids_with("failed") == ["setup"]
    assert not StateStore(ctx.state_file).has_succeeded("setup")
