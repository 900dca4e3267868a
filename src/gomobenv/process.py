"""Cancellable child-process execution with combined output capture."""

from __future__ import annotations

import os
import signal
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from gomobenv.cancel import CancellationToken, check
from gomobenv.errors import BuildCancelled

DEFAULT_POLL_INTERVAL = 0.2
TERMINATE_GRACE = 5.0


@dataclass(frozen=True, slots=True)
class Completed:
    returncode: int
    output: str


def run(
    command: Sequence[str],
    *,
    env: Mapping[str, str],
    cwd: str | Path | None = None,
    stdin: str | None = None,
    cancel: CancellationToken | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    operation: str = "run",
) -> Completed:
    """Run *command*, returning its exit status and combined stdout/stderr.

    When *cancel* fires the child is terminated (then killed after a grace
    period) and :class:`BuildCancelled` is raised.
    """
    check(cancel, operation=operation)
    child = subprocess.Popen(
        list(command),
        cwd=str(cwd) if cwd is not None else None,
        env=dict(env),
        stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
        start_new_session=os.name == "posix",
    )
    pending_input = stdin
    while True:
        try:
            output, _ = child.communicate(input=pending_input, timeout=poll_interval)
            return Completed(returncode=child.returncode, output=output or "")
        except subprocess.TimeoutExpired:
            pending_input = None
            if cancel is not None and cancel.cancelled:
                _stop(child)
                raise BuildCancelled(
                    "Child process cancelled.",
                    context={
                        "operation": operation,
                        "command": " ".join(command),
                        "reason": cancel.reason,
                    },
                ) from None


def _stop(child: subprocess.Popen[str]) -> None:
    _signal(child, signal.SIGTERM)
    try:
        child.communicate(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        _signal(child, signal.SIGKILL if os.name == "posix" else signal.SIGTERM)
        child.communicate()


def _signal(child: subprocess.Popen[str], signum: int) -> None:
    # The child leads its own session on POSIX; signal the whole group so
    # grandchildren holding the output pipe go away too.
    if os.name == "posix":
        try:
            os.killpg(child.pid, signum)
        except ProcessLookupError:
            pass
    else:
        child.send_signal(signum)
