from __future__ import annotations

import logging
import sys
from pathlib import Path

from .preparer_config import DEFAULT_LOG_PATH

FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s %(message)s"
FALLBACK_LOG_NAME = "node-preparer.log"

# Connection pool chatter from the Consul and artifact clients.
NOISY_LOGGERS = ("urllib3",)


def _file_handler(log_path: str) -> tuple[logging.Handler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        # Unprivileged runs cannot write under /var/log.
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    *,
    verbose: bool = False,
) -> str:
    """Attach the file and stderr handlers to the root logger.

    Modules only call logging.getLogger(__name__); this is the one place
    handlers are added. A second call only adjusts the level. verbose forces
    DEBUG everywhere, including the HTTP client loggers. Returns the log file
    actually in use.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)

    if getattr(root, "_node_preparer_log_path", None):
        return root._node_preparer_log_path

    file_handler, chosen_path = _file_handler(log_path)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    root.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    root.addHandler(console)

    root._node_preparer_log_path = chosen_path
    if chosen_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s, logging to %s", log_path, chosen_path)
    return chosen_path
