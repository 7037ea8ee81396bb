from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bootforge.errors import CatalogError

from .metadata import parse_unit_file
from .models import LintWarning, ParseFailure, Unit


_log = logging.getLogger("bootforge.catalog")

MANIFEST_NAME = "catalog.yaml"
UNIT_SUFFIXES = (".sh", ".py")


class ManifestEntry(BaseModel):
    """One entry of the typed ``catalog.yaml`` manifest."""

    model_config = ConfigDict(extra="forbid")

    id: str
    phase: int = Field(ge=0)
    script: str
    profile_tags: List[str]
    dependencies: List[str]
    required_vars: List[str]

    name: Optional[str] = None
    phase_name: Optional[str] = None
    packages: List[str] = Field(default_factory=list)
    dev_packages: List[str] = Field(default_factory=list)
    top_flags: List[str] = Field(default_factory=list)
    timeout: Optional[int] = Field(default=None, gt=0)


@dataclass
class Catalog:
    units: List[Unit] = field(default_factory=list)
    failures: List[ParseFailure] = field(default_factory=list)
    warnings: List[LintWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def by_id(self) -> Dict[str, Unit]:
        return {u.id: u for u in self.units}

    def get(self, unit_id: str) -> Optional[Unit]:
        return self.by_id().get(unit_id)

    def ids(self) -> List[str]:
        return [u.id for u in self.units]


class CatalogRegistry:
    """Discovers units under a directory and yields the runnable catalog.

    Resolution order:
      1) ``catalog.yaml`` entries (typed, validated)
      2) ``*.sh`` / ``*.py`` files with a metadata header, by relative path

    Files and directories starting with ``_`` are helpers and never units.
    """

    def __init__(self, units_dir: Path):
        self.units_dir = units_dir

    def discover(self, exclude: Optional[Set[Path]] = None) -> List[Path]:
        if not self.units_dir.is_dir():
            return []
        skip = {p.resolve() for p in (exclude or set())}
        found: List[Path] = []
        for p in self.units_dir.rglob("*"):
            if not p.is_file() or p.suffix not in UNIT_SUFFIXES:
                continue
            rel = p.relative_to(self.units_dir)
            if any(part.startswith("_") for part in rel.parts):
                continue
            if p.resolve() in skip:
                continue
            found.append(p)
        return sorted(found, key=lambda p: p.relative_to(self.units_dir).as_posix())

    def _load_manifest(self, catalog: Catalog) -> List[Unit]:
        manifest = self.units_dir / MANIFEST_NAME
        if not manifest.is_file():
            return []

        src = str(manifest)
        try:
            data = yaml.safe_load(manifest.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            catalog.failures.append(ParseFailure(source=src, errors=[f"unreadable manifest: {e}"]))
            return []

        entries = data.get("units") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            catalog.failures.append(ParseFailure(source=src, errors=["manifest must contain a 'units' list"]))
            return []

        units: List[Unit] = []
        for idx, raw in enumerate(entries):
            entry_src = f"{src}#units[{idx}]"
            if not isinstance(raw, dict):
                catalog.failures.append(ParseFailure(source=entry_src, errors=["entry must be a mapping"]))
                continue
            try:
                entry = ManifestEntry(**raw)
            except ValidationError as e:
                missing = [str(err["loc"][0]) for err in e.errors() if err["type"] == "missing"]
                other = [
                    f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                    if err["type"] != "missing"
                ]
                catalog.failures.append(ParseFailure(source=entry_src, missing=missing, errors=other))
                continue

            script = (self.units_dir / entry.script).resolve()
            if not script.is_file():
                catalog.failures.append(
                    ParseFailure(source=entry_src, errors=[f"script not found: {entry.script}"])
                )
                continue

            for name in ("profile_tags", "dependencies", "required_vars"):
                if not getattr(entry, name):
                    catalog.warnings.append(LintWarning(entry_src, f"declared list '{name}' is empty"))

            try:
                units.append(
                    Unit(
                        id=entry.id,
                        phase=entry.phase,
                        name=entry.name,
                        phase_name=entry.phase_name,
                        profile_tags=tuple(entry.profile_tags),
                        dependencies=tuple(entry.dependencies),
                        required_vars=tuple(entry.required_vars),
                        packages=tuple(entry.packages),
                        dev_packages=tuple(entry.dev_packages),
                        top_flags=tuple(entry.top_flags),
                        timeout_seconds=entry.timeout,
                        source=script,
                    )
                )
            except ValidationError as e:
                catalog.failures.append(
                    ParseFailure(source=entry_src, errors=[err["msg"] for err in e.errors()])
                )
        return units

    def load(self) -> Catalog:
        catalog = Catalog()
        if not self.units_dir.is_dir():
            _log.warning("Units directory not found: %s", self.units_dir)
            return catalog

        collected: List[Unit] = self._load_manifest(catalog)
        claimed = {u.source for u in collected if u.source is not None}

        for path in self.discover(exclude=claimed):
            result = parse_unit_file(path)
            catalog.warnings.extend(result.warnings)
            if result.failure is not None:
                catalog.failures.append(result.failure)
                continue
            collected.append(result.unit)

        seen: Dict[str, Unit] = {}
        duplicates: List[str] = []
        for unit in collected:
            if unit.id in seen:
                duplicates.append(f"{unit.id}: {seen[unit.id].source} and {unit.source}")
                continue
            seen[unit.id] = unit
        if duplicates:
            raise CatalogError(
                "Duplicate unit ids in catalog",
                hint="Give every unit a unique 'id' in its metadata header.",
                problems=duplicates,
            )

        catalog.units = [u.model_copy(update={"declaration_index": i}) for i, u in enumerate(collected)]

        for failure in catalog.failures:
            _log.warning("Excluded unit %s", failure.describe())
        for warning in catalog.warnings:
            _log.debug("Lint: %s", warning.describe())
        _log.debug("Catalog loaded: %d units, %d excluded", len(catalog.units), len(catalog.failures))
        return catalog
