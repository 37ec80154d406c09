"""Keep the local working copy a valid, up-to-date checkout of the configured remote."""

from __future__ import annotations

import base64
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from deployhook.models.deployment import WorkingCopyState
from deployhook.models.errors import CommandError, ReconcileError
from deployhook.models.settings import ManagerSettings
from deployhook.services.process import CommandResult, CommandRunner, SubprocessCommandRunner, run_checked
from deployhook.utils.redaction import redact_url


logger = logging.getLogger(__name__)

_SCP_REMOTE_RE = re.compile(r"^(?:[^@/\s]+@)?(?P<host>[^:/\s]+):(?P<path>[^/].*)$")
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


def remote_path_segments(url: str) -> list[str]:
    """Split a git remote into its path segments with any ``.git`` suffix removed.

    Handles scp-style remotes (``git@host:owner/repo.git``), URLs with a
    scheme (credentials are discarded with the rest of the authority) and
    plain filesystem paths.

    >>> remote_path_segments("git@github.com:octo/site.git")
    ['octo', 'site']
    """

    raw = url.strip()
    if "://" in raw:
        path = urlparse(raw).path
    else:
        scp_match = _SCP_REMOTE_RE.match(raw)
        path = scp_match.group("path") if scp_match else raw

    segments = [segment for segment in path.replace("\\", "/").split("/") if segment]
    if segments and segments[-1].lower().endswith(".git"):
        segments[-1] = segments[-1][: -len(".git")]
    return [segment for segment in segments if segment]


def remote_matches(url: str, owner: str, repo: str) -> bool:
    """Return ``True`` when ``url`` points at ``owner/repo``.

    The last two path segments of the remote must equal the owner and the
    repository name (case-insensitively), so ``octo/site-docs`` does not pass
    for ``octo/site``.
    """

    segments = remote_path_segments(url)
    if len(segments) < 2:
        return False
    return segments[-2].lower() == owner.lower() and segments[-1].lower() == repo.lower()


def clear_directory(path: Path) -> None:
    """Remove every entry inside ``path``, dotfiles included, keeping ``path`` itself."""

    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


@dataclass(slots=True)
class RepositoryReconciler:
    """Bring the working copy to a valid state, re-cloning whenever it cannot be trusted."""

    settings: ManagerSettings
    runner: CommandRunner = field(default_factory=SubprocessCommandRunner)
    git_executable: str = "git"

    @property
    def work_dir(self) -> Path:
        return self.settings.work_dir

    def reconcile(self) -> WorkingCopyState:
        """Clone or update the working copy and return :attr:`WorkingCopyState.VALID`.

        Raises :class:`ReconcileError` when any step fails.
        """

        try:
            self._log_contents()
            state = self.inspect()
            if state is WorkingCopyState.VALID:
                self._update()
            else:
                self._clone()
        except CommandError as exc:
            raise ReconcileError(f"Could not synchronise {self.settings.repository_slug}: {exc}") from exc
        except OSError as exc:
            raise ReconcileError(f"Could not prepare working copy at {self.work_dir}: {exc}") from exc

        return WorkingCopyState.VALID

    def inspect(self) -> WorkingCopyState:
        """Classify the working copy as absent, invalid or valid."""

        work_dir = self.work_dir
        if not (work_dir / ".git").exists():
            logger.info(
                "No git metadata found in %s",
                work_dir,
                extra={"event": "repository.absent", "path": str(work_dir)},
            )
            return WorkingCopyState.ABSENT

        try:
            self._git("status", cwd=work_dir)
        except CommandError as exc:
            logger.warning(
                "Existing working copy failed the integrity check: %s",
                exc,
                extra={"event": "repository.corrupted", "path": str(work_dir)},
            )
            return WorkingCopyState.INVALID

        try:
            remote = self._git("remote", "get-url", "origin", cwd=work_dir).stdout.strip()
        except CommandError as exc:
            logger.warning(
                "Could not read the origin remote: %s. Re-cloning.",
                exc,
                extra={"event": "repository.remote_unreadable", "path": str(work_dir)},
            )
            return WorkingCopyState.INVALID

        if not remote_matches(remote, self.settings.git_owner, self.settings.git_repo):
            logger.warning(
                "Existing remote %r does not match %s. Re-cloning.",
                redact_url(remote),
                self.settings.repository_slug,
                extra={"event": "repository.remote_mismatch", "path": str(work_dir)},
            )
            return WorkingCopyState.INVALID

        logger.info("Git repository verified.", extra={"event": "repository.valid", "path": str(work_dir)})
        return WorkingCopyState.VALID

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _clone(self) -> None:
        work_dir = self.work_dir
        if work_dir.is_dir():
            # A symlinked working copy keeps its link; only the target is emptied.
            logger.info("Cleaning up working copy before clone...", extra={"event": "repository.clean"})
            clear_directory(work_dir)
        else:
            if work_dir.exists() or work_dir.is_symlink():
                work_dir.unlink()
            work_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            "Cloning repository %s...",
            self.settings.repository_slug,
            extra={"event": "repository.clone", "path": str(work_dir)},
        )
        self._git("clone", self.settings.remote_url, str(work_dir), cwd=work_dir.parent, authenticated=True)

    def _update(self) -> None:
        logger.info("Updating repository...", extra={"event": "repository.pull", "path": str(self.work_dir)})
        # Drops any credentials an older remote URL may still carry.
        self._git("remote", "set-url", "origin", self.settings.remote_url, cwd=self.work_dir)
        self._git("pull", "--ff-only", cwd=self.work_dir, authenticated=True)

    def _git(self, *args: str, cwd: Path, authenticated: bool = False) -> CommandResult:
        argv = [self.git_executable, "-c", f"safe.directory={self.work_dir}"]
        if authenticated:
            argv.extend(["-c", f"http.extraHeader=Authorization: Basic {self._basic_credentials()}"])
        argv.extend(args)
        return run_checked(
            self.runner,
            argv,
            cwd=cwd,
            env=_GIT_ENV,
            timeout_seconds=self.settings.command_timeout_seconds,
        )

    def _basic_credentials(self) -> str:
        token = self.settings.git_token.get_secret_value()
        raw = f"{self.settings.git_owner}:{token}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def _log_contents(self) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        work_dir = self.work_dir
        if work_dir.is_dir():
            entries = sorted(entry.name for entry in work_dir.iterdir())
            logger.debug("Files in %s: %s", work_dir, ", ".join(entries), extra={"event": "repository.contents"})
        else:
            logger.debug("%s does not exist.", work_dir, extra={"event": "repository.contents"})


__all__ = ["RepositoryReconciler", "clear_directory", "remote_matches", "remote_path_segments"]
