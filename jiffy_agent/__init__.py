"""Jiffy Desktop Agent.

This package observes the Claude desktop application's UI content over
time, classifies observed text as user prompts or assistant responses,
tracks the monitoring session lifecycle and reports structured events to
the Jiffy collector.

Architecture:
    - Lifecycle signals (launch/terminate/activate) drive a single-owner
      session state machine
    - A 500ms poller walks the target window's accessibility tree
    - A classifier deduplicates text and decides prompt/response emission
    - An aiohttp dispatcher delivers events fire-and-forget

Modules:
    - models: Pydantic data models (MonitoringSession, Event, AuthState)
    - element_tree: Bounded accessibility tree traversal
    - classifier: Prompt/response heuristics and fingerprint dedup
    - session_manager: Session lifecycle controller and focus accumulator
    - poller: Fixed-interval window content monitor
    - event_sender: Authenticated event delivery
    - auth: In-memory auth state and token validation
    - workspace: Running-application snapshots and lifecycle signals
    - macos: PyObjC bindings for NSWorkspace and AXUIElement
    - agent: Process-wide context object and startup/shutdown wiring
"""

import logging

__version__ = "1.0.0"
__author__ = "Jiffy"

__all__ = [
    "__version__",
    "configure_logging",
]


def configure_logging(
    level: str = "INFO",
    format_string: str | None = None,
) -> logging.Logger:
    """Configure package-level logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string. Defaults to standard format
            with timestamp, level, module, and message.

    Returns:
        Configured logger instance for the jiffy_agent package.

    Example:
        >>> from jiffy_agent import configure_logging
        >>> logger = configure_logging("DEBUG")
        >>> logger.debug("Starting agent...")
    """
    if format_string is None:
        format_string = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

    logger = logging.getLogger("jiffy_agent")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)

    return logger

