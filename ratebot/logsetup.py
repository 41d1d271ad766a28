"""Log sink setup for the bot process."""

from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler

from ratebot.config import BotConfig

LOG_FORMAT = "%(levelname)s %(asctime)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# TimedRotatingFileHandler has no calendar-month unit; 30 days stands in.
_ROTATION = {
    "daily": ("midnight", 1),
    "weekly": ("W0", 1),
    "monthly": ("D", 30),
}


def configure_logging(config: BotConfig, *, stream: bool = True) -> logging.Logger:
    """Attach a rotating file handler (and optionally stderr) to the ratebot logger."""
    config.paths.log_dir.mkdir(parents=True, exist_ok=True)
    when, interval = _ROTATION[config.log_rotation]
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root = logging.getLogger("ratebot")
    root.setLevel(logging.DEBUG if config.debug else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    file_handler = TimedRotatingFileHandler(
        config.paths.log_dir / config.log_filename,
        when=when,
        interval=interval,
        backupCount=12,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if stream:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)

    root.propagate = False
    return root
