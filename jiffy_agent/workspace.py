"""Running-application tracking.

An ``ApplicationWorkspace`` answers two questions: which applications
are running, and which one is frontmost. Both reads may be called from a
worker thread. ``WorkspaceWatcher`` polls a
workspace, diffs consecutive snapshots and turns the differences into
LAUNCHED / TERMINATED / ACTIVATED lifecycle signals for the session
manager.

Backends:
    - ProcessWorkspace: psutil process table, matching the target by
      process name (no frontmost information)
    - macos.CocoaWorkspace: NSWorkspace running applications
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import psutil
from pydantic import BaseModel, ConfigDict

from .config import AgentConfig
from .models import LifecycleSignal, SignalKind

if TYPE_CHECKING:
    from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class RunningApplication(BaseModel):
    """One running application as reported by a workspace backend."""

    model_config = ConfigDict(frozen=True)

    bundle_id: Optional[str] = None
    pid: int
    name: Optional[str] = None


class ApplicationWorkspace(ABC):
    """Read-only view of the desktop's running applications."""

    @abstractmethod
    def running_applications(self) -> list[RunningApplication]:
        ...

    @abstractmethod
    def frontmost_application(self) -> Optional[RunningApplication]:
        ...

    def refresh(self) -> None:
        """Hook run on the event loop thread before each read."""

    def running_bundle_ids(self) -> set[str]:
        return {app.bundle_id for app in self.running_applications() if app.bundle_id}

    def frontmost_bundle_id(self) -> Optional[str]:
        app = self.frontmost_application()
        return app.bundle_id if app else None


class ProcessWorkspace(ApplicationWorkspace):
    """psutil-backed workspace for hosts without an application registry.

    Processes whose name is one of the configured target process names
    are reported with the target bundle identifier; every other process
    has no bundle identifier.
    """

    def __init__(self, config: AgentConfig) -> None:
        self.config = config

    def running_applications(self) -> list[RunningApplication]:
        apps = []
        for proc in psutil.process_iter(["pid", "name"]):
            name = proc.info.get("name")
            bundle_id = self.config.target_bundle_id if name in self.config.target_process_names else None
            apps.append(RunningApplication(bundle_id=bundle_id, pid=proc.info["pid"], name=name))
        return apps

    def frontmost_application(self) -> Optional[RunningApplication]:
        # The process table carries no focus information
        return None


class WorkspaceWatcher:
    """Polls a workspace and posts lifecycle signals on changes.

    Workspace reads can be slow (a full process-table scan with psutil),
    so they run on a worker thread; diffing and posting stay on the
    event loop.
    """

    def __init__(
        self,
        workspace: ApplicationWorkspace,
        session_manager: "SessionManager",
        interval_sec: float = 1.0,
    ) -> None:
        self.workspace = workspace
        self.session_manager = session_manager
        self.interval_sec = interval_sec

        self._running: set[str] = set()
        self._frontmost: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running_bundle_ids(self) -> set[str]:
        return set(self._running)

    @property
    def frontmost_bundle_id(self) -> Optional[str]:
        return self._frontmost

    def _read(self) -> tuple[set[str], Optional[str]]:
        return self.workspace.running_bundle_ids(), self.workspace.frontmost_bundle_id()

    async def _read_off_loop(self) -> tuple[set[str], Optional[str]]:
        self.workspace.refresh()
        return await asyncio.to_thread(self._read)

    async def snapshot(self) -> tuple[set[str], Optional[str]]:
        """Take and remember a baseline snapshot without posting signals."""
        self._running, self._frontmost = await self._read_off_loop()
        return set(self._running), self._frontmost

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._watch_loop())
        logger.info("Workspace watcher started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
        logger.info("Workspace watcher stopped")

    async def _watch_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Workspace poll error: {e}")

    async def poll_once(self) -> list[LifecycleSignal]:
        """Read the workspace, then post the differences from the previous snapshot."""
        running, frontmost = await self._read_off_loop()
        return self.apply(running, frontmost)

    def apply(self, running: set[str], frontmost: Optional[str]) -> list[LifecycleSignal]:
        """Diff a snapshot against the previous one and post the differences.

        Terminations are posted before launches, and activation last, so
        the focus flag reflects the newest frontmost application.
        """
        signals = [
            LifecycleSignal(kind=SignalKind.TERMINATED, bundle_id=bundle_id)
            for bundle_id in sorted(self._running - running)
        ]
        signals.extend(
            LifecycleSignal(kind=SignalKind.LAUNCHED, bundle_id=bundle_id)
            for bundle_id in sorted(running - self._running)
        )
        if frontmost != self._frontmost:
            signals.append(LifecycleSignal(kind=SignalKind.ACTIVATED, bundle_id=frontmost))

        self._running = running
        self._frontmost = frontmost

        for signal in signals:
            logger.debug(f"Workspace signal: {signal.kind} {signal.bundle_id}")
            self.session_manager.post(signal)
        return signals
