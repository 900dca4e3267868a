"""Build invocation inside an assembled environment."""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path

from gomobenv.cancel import CancellationToken
from gomobenv.classify import classify_output
from gomobenv.errors import MissingDependency, ValidationError
from gomobenv.models import BuildEnvironment, BuildResult
from gomobenv.observability import StructuredLogger
from gomobenv.process import DEFAULT_POLL_INTERVAL, run


class BuildInvoker:
    """Run one build command and normalize its outcome. Never retries."""

    def __init__(
        self,
        *,
        logger: StructuredLogger | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.logger = logger or StructuredLogger()
        self.poll_interval = poll_interval

    def invoke(
        self,
        env: BuildEnvironment,
        command: Sequence[str],
        *,
        cwd: str | Path | None = None,
        cancel: CancellationToken | None = None,
        expected_outputs: Sequence[Path] = (),
    ) -> BuildResult:
        if not command:
            raise ValidationError("invoke() requires a non-empty command.")
        executable = env.which(command[0])
        if executable is None:
            raise MissingDependency(
                f"`{command[0]}` was not found in the assembled environment.",
                hint="Declare a toolchain that ships this binary.",
                context={"operation": "invoke", "search_path": env.search_path},
            )

        argv = (str(executable), *command[1:])
        started = time.monotonic()
        completed = run(
            argv,
            env=env.process_env(),
            cwd=cwd,
            cancel=cancel,
            poll_interval=self.poll_interval,
            operation="invoke",
        )
        duration = time.monotonic() - started
        recorded = tuple(command)

        if completed.returncode != 0:
            kind = classify_output(completed.output)
            self.logger.log(
                operation="invoke",
                phase="failed",
                level="error",
                message=f"Build failed with exit status {completed.returncode}.",
                extra={
                    "command": list(recorded),
                    "exit_status": completed.returncode,
                    "classification": kind.value,
                },
            )
            return BuildResult(
                command=recorded,
                exit_status=completed.returncode,
                output=completed.output,
                classification=kind,
                duration_s=duration,
            )

        artifacts = tuple(path for path in expected_outputs if path.exists())
        self.logger.log(
            operation="invoke",
            phase="succeeded",
            message="Build succeeded.",
            extra={"command": list(recorded), "artifacts": [str(path) for path in artifacts]},
        )
        return BuildResult(
            command=recorded,
            exit_status=0,
            output=completed.output,
            artifacts=artifacts,
            duration_s=duration,
        )
