from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNIT_ID_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_./-]*$")

# Every unit must declare these, even when the list is empty.
MANDATORY_FIELDS: Tuple[str, ...] = (
    "id",
    "phase",
    "profile_tags",
    "dependencies",
    "required_vars",
)


class Unit(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    phase: int = Field(ge=0)
    name: Optional[str] = None
    phase_name: Optional[str] = None

    profile_tags: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()
    required_vars: Tuple[str, ...] = ()

    # Opaque to the engine; carried for listing only.
    packages: Tuple[str, ...] = ()
    dev_packages: Tuple[str, ...] = ()
    uses: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)
    top_flags: Tuple[str, ...] = ()

    timeout_seconds: Optional[int] = Field(default=None, gt=0)
    source: Optional[Path] = None
    declaration_index: int = 0

    @field_validator("id")
    @classmethod
    def _valid_id(cls, v: str) -> str:
        if not UNIT_ID_RE.match(v):
            raise ValueError(f"invalid unit id {v!r}")
        return v

    def label(self) -> str:
        return f"{self.id} (phase {self.phase})"


@dataclass
class ParseFailure:
    source: str
    missing: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def describe(self) -> str:
        parts: List[str] = []
        if self.missing:
            parts.append("missing mandatory fields: " + ", ".join(self.missing))
        parts.extend(self.errors)
        return f"{self.source}: " + "; ".join(parts)


@dataclass(frozen=True)
class LintWarning:
    source: str
    message: str

    def describe(self) -> str:
        return f"{self.source}: {self.message}"


@dataclass
class ParseResult:
    unit: Optional[Unit] = None
    failure: Optional[ParseFailure] = None
    warnings: List[LintWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.unit is not None
