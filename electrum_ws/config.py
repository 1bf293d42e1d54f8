"""
Configuration and logging setup for the Electrum WebSocket client.

Provides configuration dataclasses with environment variable support and
the colored log formatter used by the command line entry point. Importing
this module never touches the logging configuration; applications call
``setup_logging`` themselves.
"""

import os
import sys
import logging
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# =============================================================================
# Logging Configuration
# =============================================================================

class LogColors:
    """ANSI escape codes used by the console formatter."""
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    GREY = "\033[90m"


class ColoredFormatter(logging.Formatter):
    """One line per record: time, short level label, component, message."""

    LEVELS = {
        logging.DEBUG: ("DBG", LogColors.GREY),
        logging.INFO: ("INF", LogColors.GREEN),
        logging.WARNING: ("WRN", LogColors.YELLOW),
        logging.ERROR: ("ERR", LogColors.RED),
        logging.CRITICAL: ("CRT", LogColors.RED),
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        label, color = self.LEVELS.get(record.levelno, ("???", ""))
        timestamp = self.formatTime(record, self.datefmt)
        component = _component(record.name)

        if self.use_colors:
            line = (
                f"{LogColors.DIM}{timestamp}{LogColors.RESET} "
                f"{color}{label}{LogColors.RESET} "
                f"{LogColors.CYAN}{component:13}{LogColors.RESET} "
                f"{record.getMessage()}"
            )
        else:
            line = f"{timestamp} {label} {component:13} {record.getMessage()}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _component(name: str) -> str:
    """``electrum_ws.client`` -> ``CLIENT``; foreign loggers keep their name."""
    if name == "electrum_ws":
        return "CORE"
    if name.startswith("electrum_ws."):
        return name[len("electrum_ws."):].upper()
    return name


def setup_logging(
    level: int = logging.INFO,
    use_colors: bool = True
) -> logging.Logger:
    """
    Configure the root handler and return the package logger.

    Args:
        level: Logging level
        use_colors: Whether to use colored output

    Returns:
        The ``electrum_ws`` logger
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    console_handler.setLevel(level)

    root.setLevel(level)
    root.addHandler(console_handler)

    package_logger = logging.getLogger("electrum_ws")
    package_logger.setLevel(level)
    package_logger.propagate = True

    # The websockets library logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return package_logger


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Client Configuration
# =============================================================================

@dataclass
class ElectrumWSOptions:
    """Options of a client session."""
    # Appended to the endpoint as the ``token`` query parameter
    token: Optional[str] = None
    reconnect: bool = True
    # Log every lifecycle event with its payload
    verbose: bool = False

    # Timing (in seconds)
    reconnect_delay: float = 1.0
    connected_delay: float = 0.5  # settle time after the socket opens
    request_timeout: float = 10.0

    close_code: int = 1000

    @classmethod
    def from_env(cls) -> "ElectrumWSOptions":
        """Create options from environment variables."""
        return cls(
            token=os.getenv("ELECTRUM_WS_TOKEN") or None,
            reconnect=_env_bool("ELECTRUM_WS_RECONNECT", True),
            verbose=_env_bool("ELECTRUM_WS_VERBOSE", False),
            reconnect_delay=float(os.getenv("ELECTRUM_WS_RECONNECT_DELAY", "1.0")),
            connected_delay=float(os.getenv("ELECTRUM_WS_CONNECTED_DELAY", "0.5")),
            request_timeout=float(os.getenv("ELECTRUM_WS_REQUEST_TIMEOUT", "10.0"))
        )


@dataclass
class TransportConfig:
    """WebSocket transport configuration."""
    max_message_size: int = 10 * 1024 * 1024  # 10MB
    open_timeout: float = 10.0
    # Send requests as binary frames (text frames otherwise)
    binary: bool = True

    @classmethod
    def from_env(cls) -> "TransportConfig":
        """Create config from environment variables."""
        return cls(
            max_message_size=int(os.getenv("ELECTRUM_WS_MAX_MESSAGE_SIZE", str(10 * 1024 * 1024))),
            open_timeout=float(os.getenv("ELECTRUM_WS_OPEN_TIMEOUT", "10.0")),
            binary=_env_bool("ELECTRUM_WS_BINARY", True)
        )


# =============================================================================
# Composite Configuration
# =============================================================================

@dataclass
class Config:
    """Complete client configuration."""
    endpoint: str = "ws://127.0.0.1:50003"
    log_level: str = "INFO"
    options: ElectrumWSOptions = field(default_factory=ElectrumWSOptions)
    transport: TransportConfig = field(default_factory=TransportConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create complete config from environment."""
        return cls(
            endpoint=os.getenv("ELECTRUM_WS_URL", "ws://127.0.0.1:50003"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            options=ElectrumWSOptions.from_env(),
            transport=TransportConfig.from_env()
        )
