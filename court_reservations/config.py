import logging
import os
import sys
import time
from typing import Dict

logger = logging.getLogger(__name__)

# --- Booking rules ---
MIN_HOURS_ADVANCE = int(os.environ.get("COURT_RESERVATIONS_MIN_HOURS_ADVANCE", "0"))
MAX_DAYS_ADVANCE = int(os.environ.get("COURT_RESERVATIONS_MAX_DAYS_ADVANCE", "7"))
PROTECTION_WINDOW_HOURS = 24
SLOT_DURATION_MINUTES = 30
# One guaranteed plus one provisional reservation per apartment.
MAX_ACTIVE_RESERVATIONS = 2

# --- Courts ---
COURT_NAMES: Dict[str, str] = {"court-1": "Court 1", "court-2": "Court 2"}
DEFAULT_BLOCKOUT_REASON = "Blocked by administration"

# --- Storage & logging ---
DATA_DIR = os.environ.get("COURT_RESERVATIONS_DATA_DIR", "data")
LOG_LEVEL = os.environ.get("COURT_RESERVATIONS_LOG_LEVEL", "INFO").upper()


def setup_logging(verbose: bool = False) -> None:
    """Configures logging to stderr with local time."""
    level = logging.DEBUG if verbose else getattr(logging, LOG_LEVEL, logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    formatter.converter = time.localtime
    handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[handler])
