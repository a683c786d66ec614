"""macOS Accessibility and workspace backends (PyObjC).

Only importable functionality is gated: on other platforms
``MACOS_AVAILABLE`` is False and the agent falls back to the psutil
workspace and to snapshot replay.
"""

import logging
from typing import Any, Optional, Sequence

from .element_tree import AXAttribute
from .workspace import ApplicationWorkspace, RunningApplication

logger = logging.getLogger(__name__)

try:
    from AppKit import NSRunningApplication, NSWorkspace
    from ApplicationServices import (
        AXIsProcessTrusted,
        AXIsProcessTrustedWithOptions,
        AXUIElementCopyAttributeValue,
        AXUIElementCreateApplication,
        kAXErrorSuccess,
        kAXTrustedCheckOptionPrompt,
    )
    from Foundation import NSDate, NSRunLoop

    MACOS_AVAILABLE = True
except ImportError:
    MACOS_AVAILABLE = False


def has_accessibility_permission() -> bool:
    """Whether this process is trusted for Accessibility reads."""
    if not MACOS_AVAILABLE:
        return False
    return bool(AXIsProcessTrusted())


def request_accessibility_permission() -> bool:
    """Show the system Accessibility prompt when the process is not trusted.

    Returns:
        Whether the process is trusted right now. The user's answer to the
        prompt only takes effect on a later check.
    """
    if not MACOS_AVAILABLE:
        return False
    logger.info("Requesting Accessibility permission")
    return bool(AXIsProcessTrustedWithOptions({kAXTrustedCheckOptionPrompt: True}))


def _copy_attribute(ref: Any, name: str) -> Optional[Any]:
    error, value = AXUIElementCopyAttributeValue(ref, name, None)
    if error != kAXErrorSuccess:
        return None
    return value


class AXElement:
    """ElementNode over a live AXUIElement reference."""

    def __init__(self, ref: Any) -> None:
        self._ref = ref

    def role(self) -> Optional[str]:
        value = _copy_attribute(self._ref, AXAttribute.ROLE)
        return str(value) if value is not None else None

    def children(self) -> Sequence["AXElement"]:
        value = _copy_attribute(self._ref, AXAttribute.CHILDREN)
        return [AXElement(child) for child in value or ()]

    def attribute(self, name: str) -> Optional[Any]:
        value = _copy_attribute(self._ref, name)
        if isinstance(value, str):
            return str(value)
        return value


class AXWindowResolver:
    """Resolves the first window of the running target application."""

    def __init__(self, bundle_id: str) -> None:
        self.bundle_id = bundle_id

    def __call__(self) -> Optional[AXElement]:
        apps = NSRunningApplication.runningApplicationsWithBundleIdentifier_(self.bundle_id)
        if not apps:
            return None
        app_ref = AXUIElementCreateApplication(apps[0].processIdentifier())
        windows = _copy_attribute(app_ref, AXAttribute.WINDOWS)
        if not windows:
            return None
        return AXElement(windows[0])


class CocoaWorkspace(ApplicationWorkspace):
    """NSWorkspace-backed workspace.

    Launches, terminations and activations are found by diffing snapshots
    taken every ``workspace_poll_interval_sec``, not from NSWorkspace
    notifications. An activation that is reverted within one interval is
    never seen, and the focus flag can trail the real frontmost
    application by up to one interval.
    """

    def __init__(self) -> None:
        self._workspace = NSWorkspace.sharedWorkspace()

    def refresh(self) -> None:
        # NSWorkspace properties only update while the main run loop spins
        NSRunLoop.mainRunLoop().runUntilDate_(NSDate.date())

    @staticmethod
    def _to_model(app: Any) -> RunningApplication:
        bundle_id = app.bundleIdentifier()
        name = app.localizedName()
        return RunningApplication(
            bundle_id=str(bundle_id) if bundle_id else None,
            pid=int(app.processIdentifier()),
            name=str(name) if name else None,
        )

    def running_applications(self) -> list[RunningApplication]:
        return [self._to_model(app) for app in self._workspace.runningApplications()]

    def frontmost_application(self) -> Optional[RunningApplication]:
        app = self._workspace.frontmostApplication()
        return self._to_model(app) if app is not None else None
