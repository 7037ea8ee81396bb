"""Header metadata parser for unit sources.

A unit declares its contract in a comment block::

    #!meta
    # id: core/database
    # phase: 1
    # profile_tags:
    #   - database
    # dependencies:
    #   units:
    #     - core/nextjs
    #   packages:
    #     - drizzle-orm
    # required_vars:
    #   - DB_NAME
    #!endmeta

Scalars are ``key: value``. Lists are a key line followed by indented
``- item`` bullets, or an inline ``[a, b]``. ``dependencies`` may also be a
bare bullet list of unit ids.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from .models import MANDATORY_FIELDS, UNIT_ID_RE, LintWarning, ParseFailure, ParseResult, Unit


META_START = "#!meta"
META_END = "#!endmeta"

_LIST_FIELDS = ("profile_tags", "required_vars", "top_flags")
_DEPENDENCY_KEYS = ("units", "packages", "dev_packages")

Value = Union[str, List[str], Dict[str, List[str]]]


class _HeaderSyntaxError(ValueError):
    pass


def _extract_block(text: str) -> Optional[List[str]]:
    """Return the comment-stripped header lines, or None when no header exists."""
    lines: Optional[List[str]] = None
    for raw in text.splitlines():
        stripped = raw.strip()
        if lines is None:
            if stripped == META_START:
                lines = []
            continue
        if stripped == META_END:
            return lines
        if not stripped.startswith("#"):
            raise _HeaderSyntaxError(f"header not terminated by {META_END}")
        body = raw.lstrip()[1:]
        if body.startswith(" "):
            body = body[1:]
        lines.append(body.rstrip())
    if lines is not None:
        raise _HeaderSyntaxError(f"header not terminated by {META_END}")
    return None


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _flow_list(value: str) -> List[str]:
    inner = value.strip()[1:-1]
    return [_unquote(v) for v in inner.split(",") if v.strip()]


def _value(raw: str) -> Value:
    raw = raw.strip()
    if raw.startswith("[") and raw.endswith("]"):
        return _flow_list(raw)
    return _unquote(raw)


def _parse_fields(lines: List[str]) -> Tuple[Dict[str, Value], List[str]]:
    fields: Dict[str, Value] = {}
    errors: List[str] = []
    current_key: Optional[str] = None
    current_sub: Optional[str] = None

    for lineno, line in enumerate(lines, start=1):
        content = line.strip()
        if not content:
            continue
        indent = len(line) - len(line.lstrip(" "))

        if content.startswith("-"):
            item = _unquote(content[1:])
            if current_key is None:
                errors.append(f"header line {lineno}: list item outside of a key")
                continue
            target: Any = fields[current_key]
            if current_sub is not None and isinstance(target, dict):
                target = target[current_sub]
            if not isinstance(target, list):
                errors.append(f"header line {lineno}: '{current_key}' is not a list")
                continue
            # A bare "-" is a placeholder entry.
            if item:
                target.append(item)
            continue

        key, sep, rest = content.partition(":")
        key = key.strip()
        if not sep or not key:
            errors.append(f"header line {lineno}: expected 'key: value', got {content!r}")
            continue

        if indent == 0:
            current_key = key
            current_sub = None
            if key in fields:
                errors.append(f"header line {lineno}: duplicate key '{key}'")
            fields[key] = _value(rest) if rest.strip() else []
            continue

        if current_key is None:
            errors.append(f"header line {lineno}: nested key '{key}' outside of a block")
            continue
        parent = fields[current_key]
        if isinstance(parent, list):
            if parent:
                errors.append(f"header line {lineno}: '{current_key}' mixes list items and keys")
                continue
            parent = {}
            fields[current_key] = parent
        if not isinstance(parent, dict):
            errors.append(f"header line {lineno}: '{current_key}' is a scalar, not a block")
            continue
        sub_value = _value(rest) if rest.strip() else []
        parent[key] = sub_value if isinstance(sub_value, list) else [sub_value]
        current_sub = key

    return fields, errors


def _non_negative_int(value: Value) -> Optional[int]:
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    return None


def _as_list(name: str, value: Value, errors: List[str]) -> List[str]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [value] if value else []
    errors.append(f"'{name}' must be a list")
    return []


def parse_unit_metadata(
    text: str,
    source: Optional[Union[str, Path]] = None,
    declaration_index: int = 0,
) -> ParseResult:
    src = str(source) if source is not None else "<text>"
    warnings: List[LintWarning] = []

    try:
        block = _extract_block(text)
    except _HeaderSyntaxError as e:
        return ParseResult(failure=ParseFailure(source=src, errors=[str(e)]))
    if block is None:
        return ParseResult(
            failure=ParseFailure(
                source=src,
                missing=list(MANDATORY_FIELDS),
                errors=[f"no {META_START} header block"],
            )
        )

    fields, errors = _parse_fields(block)
    missing = [f for f in MANDATORY_FIELDS if f not in fields]

    def lint_empty(name: str, items: List[str]) -> None:
        if not items:
            warnings.append(LintWarning(src, f"declared list '{name}' is empty"))

    # phase
    phase: Optional[int] = None
    if "phase" in fields:
        raw_phase = fields["phase"]
        phase = _non_negative_int(raw_phase)
        if phase is None:
            errors.append(f"phase must be a non-negative integer, got {raw_phase!r}")

    unit_id = fields.get("id")
    if "id" in fields and (not isinstance(unit_id, str) or not UNIT_ID_RE.match(unit_id)):
        errors.append(f"invalid unit id {unit_id!r}")

    timeout: Optional[int] = None
    if "timeout" in fields:
        raw_timeout = fields["timeout"]
        timeout = _non_negative_int(raw_timeout)
        if not timeout:
            timeout = None
            errors.append(f"timeout must be a positive integer, got {raw_timeout!r}")

    lists: Dict[str, List[str]] = {}
    for name in _LIST_FIELDS:
        if name in fields:
            lists[name] = _as_list(name, fields[name], errors)
            lint_empty(name, lists[name])

    uses: Dict[str, Tuple[str, ...]] = {}
    for name, value in fields.items():
        if name.startswith("uses_from_"):
            items = _as_list(name, value, errors)
            lint_empty(name, items)
            uses[name[len("uses_from_"):]] = tuple(items)

    deps: Dict[str, List[str]] = {k: [] for k in _DEPENDENCY_KEYS}
    if "dependencies" in fields:
        raw_deps = fields["dependencies"]
        if isinstance(raw_deps, dict):
            for sub, items in raw_deps.items():
                if sub not in _DEPENDENCY_KEYS:
                    warnings.append(LintWarning(src, f"unknown dependencies key '{sub}' ignored"))
                    continue
                deps[sub] = items
                lint_empty(f"dependencies.{sub}", items)
        else:
            deps["units"] = _as_list("dependencies", raw_deps, errors)
            lint_empty("dependencies", deps["units"])

    scalars: Dict[str, Optional[str]] = {}
    for name in ("name", "phase_name"):
        value = fields.get(name)
        if isinstance(value, str):
            scalars[name] = value or None
        elif value:
            errors.append(f"'{name}' must be a scalar")

    if missing or errors:
        return ParseResult(failure=ParseFailure(source=src, missing=missing, errors=errors), warnings=warnings)

    try:
        unit = Unit(
            id=unit_id,
            phase=phase,
            name=scalars.get("name"),
            phase_name=scalars.get("phase_name"),
            profile_tags=tuple(lists.get("profile_tags", [])),
            dependencies=tuple(deps["units"]),
            required_vars=tuple(lists.get("required_vars", [])),
            packages=tuple(deps["packages"]),
            dev_packages=tuple(deps["dev_packages"]),
            uses=uses,
            top_flags=tuple(lists.get("top_flags", [])),
            timeout_seconds=timeout,
            source=Path(source) if source is not None else None,
            declaration_index=declaration_index,
        )
    except ValidationError as e:
        return ParseResult(
            failure=ParseFailure(source=src, errors=[err["msg"] for err in e.errors()]),
            warnings=warnings,
        )

    return ParseResult(unit=unit, warnings=warnings)


def parse_unit_file(path: Path, declaration_index: int = 0) -> ParseResult:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return ParseResult(failure=ParseFailure(source=str(path), errors=[f"unreadable: {e}"]))
    return parse_unit_metadata(text, source=path, declaration_index=declaration_index)
