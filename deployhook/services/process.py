"""Narrow capability for running external tools such as git and the site build."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from deployhook.models.errors import CommandError
from deployhook.utils.redaction import redact_argv


logger = logging.getLogger(__name__)

_OUTPUT_TAIL_LINES = 20


@dataclass(slots=True, frozen=True)
class CommandRequest:
    """Typed command invocation request."""

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured outcome of an external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class CommandRunner(Protocol):
    """Runtime command-execution interface."""

    def run(self, request: CommandRequest) -> CommandResult:
        """Execute ``request`` and return its captured result.

        Implementations raise :class:`CommandError` when the command cannot be
        started at all.
        """


class SubprocessCommandRunner:
    """Default command runner backed by :func:`subprocess.run`."""

    def run(self, request: CommandRequest) -> CommandResult:
        env = None
        if request.env:
            env = {**os.environ, **request.env}

        try:
            completed = subprocess.run(
                list(request.argv),
                cwd=request.cwd,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
                timeout=request.timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                argv=request.argv,
                returncode=124,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                timed_out=True,
            )
        except OSError as exc:
            raise CommandError(redact_argv(request.argv), output=str(exc)) from exc

        return CommandResult(
            argv=request.argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def output_tail(result: CommandResult, *, lines: int = _OUTPUT_TAIL_LINES) -> str:
    """Return the last ``lines`` lines of stderr, falling back to stdout."""

    output = (result.stderr or result.stdout or "").strip()
    if not output:
        return ""
    return "\n".join(output.splitlines()[-lines:])


def run_checked(
    runner: CommandRunner,
    argv: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout_seconds: float | None = None,
) -> CommandResult:
    """Run ``argv`` through ``runner`` and raise :class:`CommandError` unless it succeeds."""

    request = CommandRequest(argv=tuple(argv), cwd=cwd, env=env, timeout_seconds=timeout_seconds)
    safe_argv = redact_argv(request.argv)
    logger.debug("Running %s", " ".join(safe_argv), extra={"event": "process.run", "cwd": str(cwd or "")})

    result = runner.run(request)
    if not result.ok:
        raise CommandError(
            safe_argv,
            returncode=result.returncode,
            output=output_tail(result),
            timed_out=result.timed_out,
        )
    return result


__all__ = [
    "CommandRequest",
    "CommandResult",
    "CommandRunner",
    "SubprocessCommandRunner",
    "output_tail",
    "run_checked",
]
