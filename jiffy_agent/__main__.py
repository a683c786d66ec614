"""CLI entry point for the Jiffy Desktop Agent.

Usage:
    python -m jiffy_agent [OPTIONS]
    jiffy-agent [OPTIONS]

Logs go to stderr; replay output goes to stdout as JSON lines.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from . import __version__, configure_logging
from .config import AgentConfig


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments. Defaults to sys.argv[1:].

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="jiffy-agent",
        description="Jiffy Desktop Agent - report Claude desktop prompts and responses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --token $JIFFY_TOKEN
      Run the agent against the default collector

  %(prog)s --api-url https://jiffy.example.com/api --no-auto-start
      Use a custom collector; wait for the target app to launch

  %(prog)s --replay tree.json
      Classify a saved accessibility tree snapshot and print JSON lines

Environment Variables:
  JIFFY_API_URL           Collector API base URL
  JIFFY_TOKEN             Bearer token
  JIFFY_APP_VERSION       Override X-App-Version header value
  JIFFY_TARGET_BUNDLE_ID  Bundle identifier of the monitored app
  JIFFY_AUTO_START        Auto-start monitoring at launch (1/0)
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="Collector API base URL (env: JIFFY_API_URL)",
    )

    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Bearer token (env: JIFFY_TOKEN)",
    )

    parser.add_argument(
        "--no-auto-start",
        action="store_true",
        help="Do not start a session at launch when the target app is already running",
    )

    parser.add_argument(
        "--replay",
        type=Path,
        default=None,
        metavar="PATH",
        help="Walk and classify a JSON tree snapshot once, then exit",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (same as --log-level DEBUG)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration without starting the agent",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AgentConfig:
    """Environment configuration with CLI overrides applied."""
    return AgentConfig.from_env(
        api_base_url=args.api_url,
        token=args.token,
        auto_start_monitoring=False if args.no_auto_start else None,
    )


def run_replay(path: Path, config: AgentConfig) -> int:
    """Print one JSON line per classified item of a tree snapshot."""
    from .agent import replay_tree

    logger = logging.getLogger("jiffy_agent")
    try:
        items = replay_tree(path, config)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot replay {path}: {e}")
        return 1

    for item in items:
        print(
            json.dumps(
                {
                    "kind": item.kind.value,
                    "role": item.role,
                    "correlationId": item.correlation_id,
                    "text": item.text,
                }
            )
        )
    logger.info(f"Replay complete: {len(items)} items")
    return 0


async def main_async(config: AgentConfig) -> int:
    """Run the agent until SIGINT/SIGTERM."""
    # Import here to keep --help and --replay fast
    from .agent import JiffyAgent

    logger = logging.getLogger("jiffy_agent")
    agent = JiffyAgent(config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_signal(signum: int) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await agent.start()
        await shutdown_event.wait()
    except Exception as e:
        logger.error(f"Agent error: {e}")
        return 1
    finally:
        await agent.stop()

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments. Defaults to sys.argv[1:].

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)
    logger = configure_logging("DEBUG" if args.verbose else args.log_level)

    try:
        config = build_config(args)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.replay is not None:
        return run_replay(args.replay, config)

    if args.dry_run:
        logger.info(f"Collector: {config.event_url}")
        logger.info(f"Target: {config.target_bundle_id}")
        logger.info("Dry run - configuration is valid")
        return 0

    try:
        return asyncio.run(main_async(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
