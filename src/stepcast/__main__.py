"""
Stepcast -- Entry Point.

Usage: stepcast
       stepcast --config /path/to/config.yaml
       stepcast --headless
       stepcast --version
       python -m stepcast
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from stepcast import __version__
from stepcast.core.errors import ConfigError

if TYPE_CHECKING:
    from stepcast.channels.base import Notifier
    from stepcast.config import StepcastConfig


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="stepcast",
        description="Stepcast -- send an auto-incrementing number to a Telegram channel every day",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Stepcast v{__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: $STEPCAST_HOME/config.yaml or ~/.stepcast/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the log level",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the scheduled jobs without the interactive menu",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    from stepcast.config import default_home, ensure_directory_structure, load_config
    from stepcast.utils.logging import get_logger, setup_logging

    # .env next to the working directory first, then the one in the home
    # directory (home wins). The first may itself set STEPCAST_HOME.
    load_dotenv(Path(".env"), override=False)
    load_dotenv(default_home() / ".env", override=True)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    created = ensure_directory_structure(config)

    log_level = args.log_level or config.logging.level
    setup_logging(
        level=log_level,
        log_dir=config.logs_dir,
        json_logs=config.logging.json_logs,
        console=config.logging.console,
    )
    log = get_logger("stepcast")

    log.info(
        "stepcast_starting",
        version=__version__,
        home=str(config.stepcast_home),
        config_file=str(args.config or config.config_file),
        state_file=str(config.state_file),
        timezone=config.scheduler.timezone,
    )
    for path in created:
        log.info("created_path", path=path)

    try:
        config.require_credentials()
    except ConfigError as exc:
        log.error("config_invalid", error=str(exc), missing=exc.details.get("missing"))
        print(f"❌ {exc}. Set them in config.yaml or STEPCAST_TELEGRAM_* variables.", file=sys.stderr)
        return 1

    from stepcast.channels.telegram import TelegramNotifier

    notifier = TelegramNotifier(config.telegram.bot_token, parse_mode=config.telegram.parse_mode)

    try:
        asyncio.run(run(config, notifier, headless=args.headless))
    except ConfigError as exc:
        log.error("config_invalid", error=str(exc), code=exc.error_code)
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log.info("stepcast_shutdown_by_user")
    return 0


async def run(config: StepcastConfig, notifier: Notifier, *, headless: bool = False) -> None:
    """Starts the engine and the menu (or idles in headless mode) until exit."""
    from stepcast.channels.cli import MenuCli
    from stepcast.cron.engine import DispatchEngine
    from stepcast.utils.logging import get_logger

    log = get_logger("stepcast")

    await notifier.start()
    engine = DispatchEngine(config, notifier)
    try:
        engine.load_from_disk()
        engine.start_all()
        log.info("stepcast_ready", jobs=len(engine.list_jobs()), headless=headless)

        if headless:
            await asyncio.Event().wait()
        else:
            await MenuCli(engine, version=__version__).run()
    finally:
        engine.stop_all()
        await notifier.stop()
        log.info("stepcast_stopped")


if __name__ == "__main__":
    sys.exit(main())
