from pathlib import Path

from bootforge.core.catalog.metadata import parse_unit_metadata


FULL_HEADER = """#!/usr/bin/env bash
#!meta
# id: core/database
# name: database.sh - Postgres + Drizzle
# phase: 1
# phase_name: Infrastructure
# profile_tags:
#   - database
#   - core
# uses_from_omni_settings:
#   - PROJECT_ROOT
# top_flags:
#   - --dry-run
# dependencies:
#   units:
#     - core/nextjs
#   packages:
#     - drizzle-orm
#   dev_packages:
#     - drizzle-kit
# required_vars:
#   - DB_NAME
#!endmeta

echo hello
"""


def test_parses_full_header():
    result = parse_unit_metadata(FULL_HEADER, source="units/core/database.sh")

    assert result.ok, result.failure
    unit = result.unit
    assert unit.id == "core/database"
    assert unit.phase == 1
    assert unit.name == "database.sh - Postgres + Drizzle"
    assert unit.phase_name == "Infrastructure"
    assert unit.profile_tags == ("database", "core")
    assert unit.dependencies == ("core/nextjs",)
    assert unit.packages == ("drizzle-orm",)
    assert unit.dev_packages == ("drizzle-kit",)
    assert unit.required_vars == ("DB_NAME",)
    assert unit.uses == {"omni_settings": ("PROJECT_ROOT",)}
    assert unit.top_flags == ("--dry-run",)
    assert unit.source == Path("units/core/database.sh")
    assert result.warnings == []


def test_inline_lists_and_bare_dependency_bullets():
    text = "\n".join(
        [
            "#!meta",
            "# id: feature/auth",
            "# phase: 2",
            "# profile_tags: [auth, 'core']",
            "# dependencies:",
            "#   - core/database",
            "#   - core/nextjs",
            "# required_vars: []",
            "#!endmeta",
        ]
    )
    result = parse_unit_metadata(text)

    assert result.ok
    assert result.unit.profile_tags == ("auth", "core")
    assert result.unit.dependencies == ("core/database", "core/nextjs")
    assert result.unit.required_vars == ()


def test_missing_fields_are_all_named():
    text = "#!meta\n# id: only/id\n#!endmeta\n"
    result = parse_unit_metadata(text, source="u.sh")

    assert not result.ok
    assert result.failure.missing == ["phase", "profile_tags", "dependencies", "required_vars"]
    assert "u.sh" in result.failure.describe()


def test_negative_and_non_numeric_phase_rejected():
    for bad in ("-1", "two", "1.5"):
        text = (
            "#!meta\n# id: x\n"
            f"# phase: {bad}\n"
            "# profile_tags:\n# dependencies:\n# required_vars:\n#!endmeta\n"
        )
        result = parse_unit_metadata(text)
        assert not result.ok, bad
        assert any("phase" in e for e in result.failure.errors)


def test_empty_list_is_warning_not_failure():
    text = (
        "#!meta\n# id: x\n# phase: 0\n"
        "# profile_tags:\n"
        "# dependencies:\n"
        "#   packages:\n"
        "#     -\n"
        "# required_vars:\n"
        "#!endmeta\n"
    )
    result = parse_unit_metadata(text, source="x.sh")

    assert result.ok
    messages = [w.message for w in result.warnings]
    assert "declared list 'profile_tags' is empty" in messages
    assert "declared list 'dependencies.packages' is empty" in messages
    assert "declared list 'required_vars' is empty" in messages


def test_no_header_fails_with_every_mandatory_field():
    result = parse_unit_metadata("#!/usr/bin/env bash\necho hi\n")

    assert not result.ok
    assert result.failure.missing == ["id", "phase", "profile_tags", "dependencies", "required_vars"]


def test_unterminated_header_fails():
    result = parse_unit_metadata("#!meta\n# id: x\n# phase: 1\necho oops\n")

    assert not result.ok
    assert "not terminated" in result.failure.errors[0]


def test_invalid_id_rejected():
    text = "#!meta\n# id: bad id!\n# phase: 0\n# profile_tags:\n# dependencies:\n# required_vars:\n#!endmeta\n"
    result = parse_unit_metadata(text)

    assert not result.ok
    assert any("invalid unit id" in e for e in result.failure.errors)


def test_timeout_override():
    text = (
        "#!meta\n# id: slow\n# phase: 0\n# timeout: 30\n"
        "# profile_tags:\n# dependencies:\n# required_vars:\n#!endmeta\n"
    )
    assert parse_unit_metadata(text).unit.timeout_seconds == 30

    bad = text.replace("timeout: 30", "timeout: 0")
    assert not parse_unit_metadata(bad).ok
