"""
Service - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the resilience service.

- Provides argparse-based CLI
- Loads configuration from environment, then applies CLI
  overrides

============================================================
USAGE
============================================================
python app.py
python app.py --port 8080 --log-format text
python app.py --env-file deploy/.env --no-auto-recovery

============================================================
"""

import argparse
from typing import List

from .config import ServiceConfig, load_env


DEFAULT_SELF_PROBE_PATH = "/health/live"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="resilience-service",
        description="Health monitoring, automated recovery and security audit service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration is read from the environment (and an optional .env
file) first. Options given here override it.

Examples:
  %(prog)s                              # Defaults from environment
  %(prog)s --port 8080 --log-format text
  %(prog)s --env-file deploy/.env --no-auto-recovery
        """
    )

    # --------------------------------------------------------
    # Server Options
    # --------------------------------------------------------
    server_group = parser.add_argument_group("Server Options")

    server_group.add_argument(
        "--host",
        type=str,
        help="Host to bind to (default: HOST or 0.0.0.0)",
    )

    server_group.add_argument(
        "--port",
        type=int,
        help="Port to bind to (default: PORT or 4000)",
    )

    server_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path to a .env file (default: ./.env when present)",
    )

    # --------------------------------------------------------
    # Monitoring Options
    # --------------------------------------------------------
    monitoring_group = parser.add_argument_group("Monitoring Options")

    monitoring_group.add_argument(
        "--no-auto-recovery",
        action="store_true",
        help="Start with automatic recovery disabled",
    )

    monitoring_group.add_argument(
        "--check-interval",
        type=float,
        metavar="SECONDS",
        help="Health check interval in seconds (default: 30)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: LOG_FORMAT or json)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate CLI arguments, return list of errors."""
    errors = []

    if args.port is not None and not 0 < args.port < 65536:
        errors.append("--port must be within 1-65535")

    if args.check_interval is not None and args.check_interval <= 0:
        errors.append("--check-interval must be positive")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> ServiceConfig:
    """
    Build service configuration from environment and CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        ServiceConfig instance
    """
    load_env(args.env_file)
    config = ServiceConfig.from_env()

    if args.host:
        config.host = args.host
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.no_auto_recovery:
        config.monitoring.auto_recovery = False
    if args.check_interval:
        config.monitoring.check_interval_seconds = args.check_interval

    if args.port:
        default_probe = f"http://localhost:{config.port}{DEFAULT_SELF_PROBE_PATH}"
        # Keep the self probe pointed at this process unless it was configured elsewhere
        if config.monitoring.self_probe_url == default_probe:
            config.monitoring.self_probe_url = f"http://localhost:{args.port}{DEFAULT_SELF_PROBE_PATH}"
        config.port = args.port

    return config
