"""Orchestration layer that chains reconciliation, the site build and the fallback guarantee."""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from deployhook.models.deployment import BuildOutcome, CycleResult, WorkingCopyState
from deployhook.models.errors import ReconcileError
from deployhook.models.settings import ManagerSettings
from deployhook.services.builder import SiteBuilder
from deployhook.services.fallback import PublishGuarantor
from deployhook.services.process import CommandRunner, SubprocessCommandRunner
from deployhook.services.repository import RepositoryReconciler


logger = logging.getLogger(__name__)


class SupportsReconcile(Protocol):
    """Subset of :class:`RepositoryReconciler` relied on by the cycle."""

    def reconcile(self) -> WorkingCopyState:
        """Return ``VALID`` or raise :class:`ReconcileError`."""


class SupportsBuild(Protocol):
    """Protocol describing the build executor interface."""

    def build(self, work_dir: Path | None = None) -> BuildOutcome:
        """Build the working copy and publish its output."""


class SupportsPublishGuarantee(Protocol):
    """Protocol describing the publish guarantor interface."""

    def ensure_servable(self, publish_root: Path | None = None) -> bool:
        """Write a fallback entry page when needed, returning ``True`` if one was written."""


@dataclass(slots=True)
class DeploymentCycle:
    """Run reconcile, build and ensure-servable in order, never raising to the caller."""

    settings: ManagerSettings
    reconciler: SupportsReconcile
    builder: SupportsBuild
    guarantor: SupportsPublishGuarantee

    @classmethod
    def from_settings(
        cls, settings: ManagerSettings, *, runner: CommandRunner | None = None
    ) -> "DeploymentCycle":
        """Wire the default components around a shared command runner."""

        active_runner = runner or SubprocessCommandRunner()
        return cls(
            settings=settings,
            reconciler=RepositoryReconciler(settings=settings, runner=active_runner),
            builder=SiteBuilder(settings=settings, runner=active_runner),
            guarantor=PublishGuarantor(settings=settings),
        )

    def run(self, reason: str = "manual") -> CycleResult:
        """Execute one full cycle and return a summary of what happened."""

        result = CycleResult(reason=reason)
        logger.info("Starting build process (%s)...", reason, extra={"event": "cycle.start", "reason": reason})

        try:
            result.state = self.reconciler.reconcile()
            result.outcome = self.builder.build(self.settings.work_dir)
            if not result.outcome.succeeded:
                result.errors.append(result.outcome.message or "Build failed.")
        except ReconcileError as exc:
            logger.error("Repository reconciliation failed: %s", exc, extra={"event": "cycle.reconcile_failed"})
            result.errors.append(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during build cycle", extra={"event": "cycle.error"})
            result.errors.append(f"Unexpected error: {exc}")

        try:
            result.fallback_written = self.guarantor.ensure_servable(self.settings.serve_dir)
        except OSError as exc:
            logger.exception("Could not write fallback page", extra={"event": "cycle.fallback_failed"})
            result.errors.append(f"Fallback page could not be written: {exc}")

        result.finished_at = datetime.now(timezone.utc)
        if result.succeeded:
            logger.info("Build cycle finished.", extra={"event": "cycle.finish", "reason": reason})
        else:
            logger.warning(
                "Build cycle finished with errors: %s",
                "; ".join(_first_line(error) for error in result.errors),
                extra={"event": "cycle.finish", "reason": reason},
            )
        return result


def _first_line(text: str) -> str:
    return text.strip().splitlines()[0] if text.strip() else text


_STOP = object()


class BuildQueue:
    """Single worker that drains build requests one at a time.

    At most one cycle runs and at most one more waits. Requests arriving while
    a cycle is already waiting are folded into it, since that cycle will pull
    the latest state anyway.
    """

    def __init__(self, cycle: Callable[[str], CycleResult]) -> None:
        self._cycle = cycle
        self._queue: queue.Queue[object] = queue.Queue()
        self._lock = threading.Lock()
        self._pending = False
        self._thread: threading.Thread | None = None
        self.last_result: CycleResult | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._work, name="deployhook-builder", daemon=True)
        self._thread.start()

    def submit(self, reason: str) -> bool:
        """Queue a cycle, returning ``False`` when one is already waiting."""

        with self._lock:
            if self._pending:
                logger.info(
                    "Build already queued; folding %s trigger into it.",
                    reason,
                    extra={"event": "queue.coalesced", "reason": reason},
                )
                return False
            self._pending = True
        self._queue.put(reason)
        return True

    def join(self) -> None:
        """Block until every queued cycle has finished."""

        self._queue.join()

    def stop(self, timeout: float | None = None) -> None:
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                with self._lock:
                    self._pending = False
                self.last_result = self._run(str(item))
            finally:
                self._queue.task_done()

    def _run(self, reason: str) -> CycleResult | None:
        try:
            return self._cycle(reason)
        except Exception:
            logger.exception("Build worker caught an unhandled error", extra={"event": "queue.error"})
            return None


__all__ = [
    "BuildQueue",
    "DeploymentCycle",
    "SupportsBuild",
    "SupportsPublishGuarantee",
    "SupportsReconcile",
]
