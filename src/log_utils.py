"""
Logging utilities for the cStor pool upgrader.
"""

import logging
import sys
from typing import List, Optional

NOISY_LOGGERS = ("urllib3", "google.auth")


def setup_logging(
    verbose: bool = False, log_file: Optional[str] = "cstor-upgrade.log"
) -> logging.Logger:
    """
    Set up logging configuration.

    Upgrade Jobs usually run with a read-only root filesystem; pass
    ``log_file=None`` there and rely on the pod's stdout.

    Args:
        verbose: Enable verbose (DEBUG) logging
        log_file: Path to log file, or None for stdout only

    Returns:
        Logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # HTTP connection chatter drowns the upgrade progress at DEBUG
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)

    return logging.getLogger(__name__)
