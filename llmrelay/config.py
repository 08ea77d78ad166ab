import logging
import os
from typing import Optional, Union

import dotenv
from rich.logging import RichHandler

# Load environment variables
dotenv.load_dotenv()

DOTENV_PATH = ".env"

LOG_LEVEL_ENV = "LLMRELAY_LOG_LEVEL"
TIMEOUT_ENV = "LLMRELAY_TIMEOUT"
DEFAULT_TIMEOUT = 60.0

# Largest SSE frame accepted before the stream is declared unrecoverable
MAX_FRAME_BYTES = 4 * 1024 * 1024


def env_value(name: Optional[str]) -> Optional[str]:
    """
    Read a setting from the process environment, falling back to `.env`.

    Empty strings count as unset.

    Args:
        name (str, optional): Variable name. None returns None.

    Returns:
        Optional[str]: The value, or None if not set anywhere.
    """
    if not name:
        return None
    value = os.environ.get(name)
    if value:
        return value
    if os.path.exists(DOTENV_PATH):
        value = dotenv.get_key(DOTENV_PATH, name)
        if value:
            return value
    return None


def normalize_base_url(url: str) -> str:
    """Base URLs are joined with relative paths, so they always end in '/'."""
    return url if url.endswith("/") else f"{url}/"


def resolve_endpoint(default_endpoint: str, base_url_env: Optional[str] = None) -> str:
    """
    Pick the endpoint for an adapter: the override env var if set, else the
    adapter default.
    """
    override = env_value(base_url_env)
    return normalize_base_url(override or default_endpoint)


def transport_timeout() -> float:
    raw = env_value(TIMEOUT_ENV)
    if raw is None:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring invalid %s=%r, using %.0fs", TIMEOUT_ENV, raw, DEFAULT_TIMEOUT
        )
        return DEFAULT_TIMEOUT


def configure_logging(level: Union[int, str, None] = None) -> logging.Logger:
    """
    Attach a rich console handler to the `llmrelay` logger.

    Args:
        level (int | str, optional): Log level. Defaults to LLMRELAY_LOG_LEVEL,
            then WARNING.

    Returns:
        logging.Logger: The configured package logger.
    """
    if level is None:
        level = env_value(LOG_LEVEL_ENV) or "WARNING"
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger("llmrelay")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
    return logger
