#!/usr/bin/env python3
"""
Resilience Service - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Runs the health checker, recovery orchestrator, request monitor
and security audit log behind one aiohttp server.

- Compatible with PM2 process management
- Stops cleanly on SIGINT / SIGTERM
- Monitoring starts only after the server is listening, so the
  first self probe can reach it

============================================================
USAGE
============================================================
Direct execution:
    python app.py

With PM2:
    pm2 start app.py --interpreter python --name resilience -- --port 4000

Environment-based configuration:
    PORT=4000 ADMIN_TOKEN=... DATABASE_URL=postgresql://... python app.py

============================================================
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

from aiohttp import web

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.exceptions import ConfigurationError
from core.logging_setup import setup_logging
from service.cli import build_config, create_parser, validate_args
from service.container import ResilienceService
from service.web import create_app


# ============================================================
# SIGNALS
# ============================================================

def install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGINT / SIGTERM."""
    if sys.platform == "win32":
        # Windows has no loop signal handlers, KeyboardInterrupt covers Ctrl+C
        return

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)


# ============================================================
# MAIN FUNCTION
# ============================================================

async def run_application(args) -> int:
    """
    Run the resilience service.

    Args:
        args: Parsed CLI arguments

    Returns:
        Exit code
    """
    try:
        config = build_config(args)
    except (ConfigurationError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(config.log_level, config.log_format)

    service = ResilienceService(config)
    app = create_app(service)

    runner = web.AppRunner(app)
    await runner.setup()

    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    try:
        site = web.TCPSite(runner, config.host, config.port)
        await site.start()
        logger.info(f"Resilience service listening on http://{config.host}:{config.port}")

        await service.start()

        logger.info("Press Ctrl+C to stop")
        await stop_event.wait()
        logger.info("Shutdown requested")
        return 0

    except OSError as e:
        logger.error(f"Failed to bind {config.host}:{config.port}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await service.stop()
        await runner.cleanup()


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_application(args))
    except KeyboardInterrupt:
        return 130


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
