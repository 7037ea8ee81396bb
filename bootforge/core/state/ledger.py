from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, List, Optional

from bootforge.errors import StateError

try:
    import fcntl as _fcntl
    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False
    logging.getLogger("bootforge.locking").warning(
        "fcntl not available (non-POSIX). Ledger locking is disabled."
    )


_log = logging.getLogger("bootforge.state")

SUCCESS = "success"
_STATE_HINT = "Check permissions and free space for the state ledger; resume cannot be trusted without it."


@contextmanager
def _locked_file(path: Path, mode: str) -> Generator:
    """Open a file and apply an exclusive flock (POSIX only)."""
    with open(path, mode, encoding="utf-8") as fh:
        if _HAS_FCNTL:
            _fcntl.flock(fh, _fcntl.LOCK_EX)
        try:
            yield fh
        finally:
            if _HAS_FCNTL:
                _fcntl.flock(fh, _fcntl.LOCK_UN)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class StateRecord:
    unit_id: str
    status: str
    ts: str

    def to_line(self) -> str:
        return f"{self.unit_id}={self.status}:{self.ts}"

    @classmethod
    def from_line(cls, line: str) -> Optional["StateRecord"]:
        unit_id, sep, rest = line.strip().partition("=")
        if not sep or not unit_id:
            return None
        status, _, ts = rest.partition(":")
        return cls(unit_id=unit_id, status=status, ts=ts)


class StateStore:
    """Append-only ledger of completed units, one ``<id>=success:<ts>`` per line.

    Single writer only: ``mark_success`` checks for an existing line and then
    appends under an exclusive lock, but makes no attempt at cross-process
    compare-and-swap.
    """

    def __init__(self, path: Path, dry_run: bool = False):
        self.path = path
        self.dry_run = dry_run

    # ---------------------------------------------------------------------
    # IO
    # ---------------------------------------------------------------------

    def ensure(self) -> None:
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
        except OSError as e:
            raise StateError(f"Cannot create state ledger {self.path}: {e}", hint=_STATE_HINT) from e

    def _read_lines(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise StateError(f"Cannot read state ledger {self.path}: {e}", hint=_STATE_HINT) from e

    def records(self) -> List[StateRecord]:
        out: List[StateRecord] = []
        for line in self._read_lines():
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            rec = StateRecord.from_line(line)
            if rec is None:
                _log.warning("Ignoring malformed ledger line: %r", line)
                continue
            out.append(rec)
        return out

    # ---------------------------------------------------------------------
    # Operations
    # ---------------------------------------------------------------------

    def has_succeeded(self, unit_id: str) -> bool:
        return any(r.unit_id == unit_id and r.status == SUCCESS for r in self.records())

    def mark_success(self, unit_id: str) -> bool:
        """Record a success. Returns False when already recorded or in dry-run."""
        if self.dry_run:
            _log.info("[dry] would record %s=%s", unit_id, SUCCESS)
            return False

        self.ensure()
        prefix = f"{unit_id}={SUCCESS}"
        try:
            with _locked_file(self.path, "r+") as fh:
                content = fh.read()
                for line in content.splitlines():
                    if line == prefix or line.startswith(prefix + ":"):
                        _log.debug("%s already recorded", unit_id)
                        return False
                if content and not content.endswith("\n"):
                    fh.write("\n")
                fh.write(StateRecord(unit_id, SUCCESS, _utc_now_iso()).to_line() + "\n")
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as e:
            raise StateError(f"Cannot write state ledger {self.path}: {e}", hint=_STATE_HINT) from e
        _log.debug("Recorded %s", unit_id)
        return True

    def _rewrite(self, keep: List[str]) -> None:
        try:
            fd, tmp = tempfile.mkstemp(prefix=".ledger-", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write("".join(line + "\n" for line in keep))
            os.replace(tmp, self.path)
        except OSError as e:
            raise StateError(f"Cannot rewrite state ledger {self.path}: {e}", hint=_STATE_HINT) from e

    def clear(self, unit_id: str) -> int:
        """Remove every line for ``unit_id``. Returns how many were removed."""
        lines = self._read_lines()
        keep = [line for line in lines if line.partition("=")[0].strip() != unit_id]
        removed = len(lines) - len(keep)
        if not removed:
            return 0
        if self.dry_run:
            _log.info("[dry] would clear state for %s", unit_id)
            return removed
        self._rewrite(keep)
        _log.info("Cleared state for %s", unit_id)
        return removed

    def clear_all(self) -> None:
        if self.dry_run:
            _log.info("[dry] would clear all state in %s", self.path)
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StateError(f"Cannot remove state ledger {self.path}: {e}", hint=_STATE_HINT) from e
        _log.info("Cleared all state")

    def completed(self) -> List[StateRecord]:
        seen = set()
        out: List[StateRecord] = []
        for rec in self.records():
            if rec.status == SUCCESS and rec.unit_id not in seen:
                seen.add(rec.unit_id)
                out.append(rec)
        return out

    def count(self) -> int:
        return len(self.completed())
