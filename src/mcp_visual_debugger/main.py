#!/usr/bin/env python3
"""
MCP Visual Debugger - drive the MCP Inspector in a browser and screenshot each step
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .browser.capture import CaptureOptions, ScreenshotTool
from .core.config import PROJECT_ROOT, HarnessSettings
from .core.errors import HarnessError
from .core.orchestrator import HarnessOrchestrator
from .shared.logging_utils import configure_root_logging, get_log_level_from_env

logger = logging.getLogger(__name__)


def load_settings(config_path: Optional[Path]) -> HarnessSettings:
    """Use the given config file, else config.yaml in the project root, else defaults."""
    if not config_path:
        default_config = PROJECT_ROOT / "config.yaml"
        if default_config.exists():
            config_path = default_config
    if config_path:
        return HarnessSettings.from_yaml(config_path)
    return HarnessSettings()


async def run_harness(argv: Optional[List[str]] = None) -> int:
    """Main entry point of the inspector harness"""

    parser = argparse.ArgumentParser(description="MCP Visual Debugger")
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the browser without a window"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_root_logging(settings.logs_dir, args.log_level or settings.log_level)

    config = settings.to_run_configuration(headless=True if args.headless else None)

    print("Starting MCP Visual Debugger...")
    print(f"Server Command: {config.server_command} {' '.join(config.server_args)}")

    report = await HarnessOrchestrator().run(config)

    print("\n" + report.summary())
    return 0 if report.error is None else 1


async def run_screenshot(argv: Optional[List[str]] = None) -> int:
    """Main entry point of the standalone screenshot tool"""

    parser = argparse.ArgumentParser(
        description="Take a screenshot of a URL",
        usage="mcp-screenshot <url> [filename]",
    )
    parser.add_argument("url", nargs="?", help="Page to capture")
    parser.add_argument("filename", nargs="?", help="Output file name under screenshots/")
    parser.add_argument("--selector", help="Capture only the element matching this CSS selector")
    parser.add_argument("--wait", type=int, default=2000, help="Settle time in ms before capturing")
    parser.add_argument("--no-full-page", action="store_true", help="Capture only the viewport")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")

    args = parser.parse_args(argv)
    configure_root_logging(None, get_log_level_from_env())

    if not args.url:
        print("Usage: mcp-screenshot <url> [filename]", file=sys.stderr)
        return 1

    options = CaptureOptions(
        url=args.url,
        filename=args.filename,
        selector=args.selector,
        full_page=not args.no_full_page,
        wait_ms=args.wait,
        viewport=(1200, 800),
    )

    async with ScreenshotTool() as tool:
        try:
            await tool.init(headless=not args.headed)
            path = await tool.take_screenshot(options)
        except HarnessError as e:
            logger.error(f"Screenshot failed: {e}")
            return 1
    print(path)
    return 0


def main() -> None:
    try:
        sys.exit(asyncio.run(run_harness()))
    except HarnessError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def screenshot_main() -> None:
    try:
        sys.exit(asyncio.run(run_screenshot()))
    except Exception as e:
        logger.error(f"Screenshot failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
