from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional


_log = logging.getLogger("bootforge.execution")

# Grace period between SIGTERM and SIGKILL for a timed-out process group.
KILL_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class ProcessOutcome:
    command: List[str]
    returncode: Optional[int]
    timed_out: bool
    duration_seconds: float

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


def _kill_group(proc: subprocess.Popen) -> None:
    for sig, wait in ((signal.SIGTERM, KILL_GRACE_SECONDS), (signal.SIGKILL, None)):
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            return
        try:
            proc.wait(timeout=wait)
            return
        except subprocess.TimeoutExpired:
            continue


def run_streaming(
    command: List[str],
    *,
    cwd: Path,
    env: Dict[str, str],
    timeout: Optional[float],
    on_line: Callable[[str], None],
) -> ProcessOutcome:
    """Run a command in its own process group, streaming merged output lines.

    ``timeout`` of None or 0 waits forever. On timeout the whole group is
    terminated, then killed. An interrupt kills the group the same way and is
    re-raised. Failure to start the command raises the underlying OSError.
    """
    started = time.monotonic()
    proc = subprocess.Popen(
        command,
        cwd=str(cwd),
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
        start_new_session=True,
    )

    def _drain() -> None:
        assert proc.stdout is not None
        for line in proc.stdout:
            on_line(line.rstrip("\n"))

    reader = threading.Thread(target=_drain, name="bootforge-output", daemon=True)
    reader.start()

    timed_out = False
    try:
        proc.wait(timeout=timeout or None)
    except subprocess.TimeoutExpired:
        timed_out = True
        _log.debug("Timeout after %ss, killing process group %s", timeout, proc.pid)
        _kill_group(proc)
    except BaseException:
        # The child has its own session, so a terminal Ctrl-C never reaches it.
        _log.debug("Interrupted, killing process group %s", proc.pid)
        _kill_group(proc)
        raise
    finally:
        reader.join(timeout=KILL_GRACE_SECONDS)
        if proc.stdout is not None:
            proc.stdout.close()

    return ProcessOutcome(
        command=list(command),
        returncode=proc.returncode,
        timed_out=timed_out,
        duration_seconds=round(time.monotonic() - started, 3),
    )
