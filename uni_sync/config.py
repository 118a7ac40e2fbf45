"""Daemon settings from /etc/default/uni-sync, environment and CLI arguments."""

import argparse
import logging
import os
from dataclasses import dataclass

from dotenv import dotenv_values

DEFAULT_SETTINGS_PATH = "/etc/default/uni-sync"
DEFAULT_CONFIG_PATH = "/etc/uni-sync/uni-sync.json"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _parse_cli_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="uni-sync",
        description="Lian-Li UNI FAN controller synchronisation daemon",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help=f"Device configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--list-sensors",
        action="store_true",
        help="Print the available temperature sensors and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        help="Log level (overrides settings file)",
    )
    return parser.parse_args(argv)


@dataclass
class DaemonConfig:
    """Daemon settings."""

    config_path: str = DEFAULT_CONFIG_PATH
    log_level: str = "INFO"
    debug: bool = False
    list_sensors: bool = False

    def __post_init__(self) -> None:
        if not self.config_path:
            raise ValueError("Config path must not be empty")

        if self.debug:
            self.log_level = "DEBUG"

        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{self.log_level}'. "
                f"Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )

    @classmethod
    def load(cls, argv: list[str] | None = None) -> "DaemonConfig":
        """Load settings from environment file, env vars, and CLI args.

        Priority (highest to lowest):
        1. CLI arguments
        2. Environment variables (set by systemd EnvironmentFile)
        3. /etc/default/uni-sync file
        4. Dataclass defaults
        """
        file_env = {
            k: v for k, v in dotenv_values(DEFAULT_SETTINGS_PATH).items() if v is not None
        }

        def env(key: str) -> str | None:
            if key in os.environ:
                return os.environ[key]
            return file_env.get(key)

        kwargs: dict[str, object] = {}

        if (v := env("CONFIG")) is not None:
            kwargs["config_path"] = v

        if (v := env("LOG_LEVEL")) is not None:
            kwargs["log_level"] = v.upper()

        if (v := env("DEBUG")) is not None:
            kwargs["debug"] = v.lower() in ("true", "1", "yes")

        # CLI arguments override everything
        args = _parse_cli_args(argv)

        if args.config is not None:
            kwargs["config_path"] = args.config

        if args.log_level is not None:
            kwargs["log_level"] = args.log_level

        if args.debug is True:
            kwargs["debug"] = True

        kwargs["list_sensors"] = args.list_sensors

        return cls(**kwargs)

    def setup_logging(self) -> None:
        """Configure logging based on these settings."""
        logging.basicConfig(
            level=getattr(logging, self.log_level),
            format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
