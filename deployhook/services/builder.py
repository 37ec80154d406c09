"""Run the external site build and copy its output into the publish root."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from deployhook.models.deployment import BuildOutcome
from deployhook.models.errors import BuildError, CommandError
from deployhook.models.settings import ManagerSettings
from deployhook.services.process import CommandRunner, SubprocessCommandRunner, run_checked


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SiteBuilder:
    """Install dependencies, build the site and publish the declared output directory."""

    settings: ManagerSettings
    runner: CommandRunner = field(default_factory=SubprocessCommandRunner)

    def build(self, work_dir: Path | None = None) -> BuildOutcome:
        """Build the working copy and return the outcome.

        Any step failure stops the remaining steps. Files already copied into
        the publish root are left in place.
        """

        source = work_dir or self.settings.work_dir
        try:
            self._run_step("Installing dependencies", self.settings.install_command, source)
            self._run_step("Building site", self.settings.build_command, source)
            output_dir = self._require_output(source)
            self._publish(output_dir)
        except BuildError as exc:
            logger.error("Build failed: %s", exc, extra={"event": "build.failed", "path": str(source)})
            return BuildOutcome.failure(str(exc))

        logger.info("Build completed successfully.", extra={"event": "build.succeeded", "path": str(source)})
        return BuildOutcome.success()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _run_step(self, label: str, command: tuple[str, ...], cwd: Path) -> None:
        logger.info("%s...", label, extra={"event": "build.step", "command": " ".join(command)})
        try:
            run_checked(self.runner, command, cwd=cwd, timeout_seconds=self.settings.command_timeout_seconds)
        except CommandError as exc:
            raise BuildError(f"{label} failed: {exc}") from exc

    def _require_output(self, work_dir: Path) -> Path:
        output_dir = work_dir / self.settings.build_output
        if not output_dir.is_dir():
            raise BuildError(
                f"Build directory not found at {output_dir}. "
                "Build might have failed or the build script outputs elsewhere."
            )
        return output_dir

    def _publish(self, output_dir: Path) -> None:
        serve_dir = self.settings.serve_dir
        logger.info(
            "Syncing files to %s...",
            serve_dir,
            extra={"event": "build.publish", "source": str(output_dir), "target": str(serve_dir)},
        )
        try:
            serve_dir.mkdir(parents=True, exist_ok=True)
            shutil.copytree(output_dir, serve_dir, symlinks=True, dirs_exist_ok=True)
        except OSError as exc:
            raise BuildError(f"Copying {output_dir} to {serve_dir} failed: {exc}") from exc


__all__ = ["SiteBuilder"]
