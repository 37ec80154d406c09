"""Error taxonomy shared by the deployment manager components."""

from __future__ import annotations

from typing import Sequence


class DeployhookError(RuntimeError):
    """Base class for errors raised by the deployment manager."""


class ConfigError(DeployhookError):
    """Raised when mandatory startup configuration is missing or invalid."""


class AuthError(DeployhookError):
    """Raised when an inbound webhook fails signature verification."""


class CommandError(DeployhookError):
    """Raised when an external command cannot be started or exits unsuccessfully."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        returncode: int | None = None,
        output: str = "",
        timed_out: bool = False,
    ) -> None:
        self.argv = tuple(argv)
        self.returncode = returncode
        self.output = output
        self.timed_out = timed_out
        super().__init__(self._describe())

    def _describe(self) -> str:
        command = " ".join(self.argv)
        if self.returncode is None:
            summary = f"could not start command: {command}"
        elif self.timed_out:
            summary = f"command timed out: {command}"
        else:
            summary = f"command failed with exit code {self.returncode}: {command}"
        if self.output:
            return f"{summary}\n{self.output}"
        return summary


class ReconcileError(DeployhookError):
    """Raised when the working copy cannot be brought to a valid state."""


class BuildError(DeployhookError):
    """Raised when a build step fails."""


__all__ = [
    "AuthError",
    "BuildError",
    "CommandError",
    "ConfigError",
    "DeployhookError",
    "ReconcileError",
]
