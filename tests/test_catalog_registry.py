import pytest

from bootforge.core.catalog.registry import CatalogRegistry
from bootforge.errors import CatalogError


def test_discovers_units_in_path_order(tmp_path, write_unit):
    write_unit("20-ui.sh", "core/ui", 2)
    write_unit("10-db.sh", "core/database", 1)
    write_unit("_lib/helpers.sh", "helpers", 0)
    (tmp_path / "units" / "README.md").write_text("not a unit", encoding="utf-8")

    catalog = CatalogRegistry(tmp_path / "units").load()

    assert catalog.ids() == ["core/database", "core/ui"]
    assert [u.declaration_index for u in catalog.units] == [0, 1]
    assert catalog.ok


def test_bad_unit_is_excluded_and_reported(tmp_path, write_unit):
    write_unit("a.sh", "good", 0)
    bad = tmp_path / "units" / "b.sh"
    bad.write_text("#!meta\n# id: broken\n#!endmeta\n", encoding="utf-8")

    catalog = CatalogRegistry(tmp_path / "units").load()

    assert catalog.ids() == ["good"]
    assert len(catalog.failures) == 1
    assert catalog.failures[0].source == str(bad)
    assert "phase" in catalog.failures[0].missing


def test_duplicate_ids_are_fatal(tmp_path, write_unit):
    write_unit("a.sh", "same", 0)
    write_unit("b.sh", "same", 1)

    with pytest.raises(CatalogError) as exc:
        CatalogRegistry(tmp_path / "units").load()

    assert "same" in exc.value.problems[0]


def test_manifest_entries_come_first_and_claim_their_script(tmp_path, write_unit):
    write_unit("z.sh", "header/unit", 0)
    script = tmp_path / "units" / "scripts" / "db.sh"
    script.parent.mkdir(parents=True)
    script.write_text("#!/usr/bin/env bash\necho db\n", encoding="utf-8")
    (tmp_path / "units" / "catalog.yaml").write_text(
        "units:\n"
        "  - id: manifest/db\n"
        "    phase: 1\n"
        "    script: scripts/db.sh\n"
        "    profile_tags: [database]\n"
        "    dependencies: []\n"
        "    required_vars: [DB_NAME]\n"
        "    timeout: 120\n",
        encoding="utf-8",
    )

    catalog = CatalogRegistry(tmp_path / "units").load()

    # scripts/db.sh has no header but is not reported: the manifest owns it.
    assert catalog.ok
    assert catalog.ids() == ["manifest/db", "header/unit"]
    db = catalog.get("manifest/db")
    assert db.required_vars == ("DB_NAME",)
    assert db.timeout_seconds == 120
    assert db.source == script.resolve()


def test_manifest_entry_missing_fields_is_reported(tmp_path):
    (tmp_path / "units").mkdir()
    (tmp_path / "units" / "catalog.yaml").write_text(
        "units:\n  - id: half\n    script: nope.sh\n",
        encoding="utf-8",
    )

    catalog = CatalogRegistry(tmp_path / "units").load()

    assert catalog.units == []
    failure = catalog.failures[0]
    assert set(failure.missing) == {"phase", "profile_tags", "dependencies", "required_vars"}


def test_missing_units_dir_yields_empty_catalog(tmp_path):
    catalog = CatalogRegistry(tmp_path / "nope").load()
    assert catalog.units == [] and catalog.ok
