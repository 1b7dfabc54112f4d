import os
from pathlib import Path

DB_PATH = os.environ.get("READSYNC_DB_PATH", str(Path.cwd() / "readsync.db"))
DATABASE_URL = f"sqlite+aiosqlite:///{DB_PATH}"

PHONE = "Phone"
WATCH = "Watch"

# This device and its peer
DEVICE_NAME = os.environ.get("READSYNC_DEVICE", PHONE)
PEER_URL = os.environ.get("READSYNC_PEER_URL") or None
PEER_TIMEOUT = float(os.environ.get("READSYNC_PEER_TIMEOUT", "5.0"))

# Calendar-local day boundaries for streaks and goals
TIMEZONE = os.environ.get("READSYNC_TIMEZONE", "UTC")

DEBOUNCE_SECONDS = float(os.environ.get("READSYNC_DEBOUNCE_SECONDS", "0.25"))
PARDON_WINDOW_HOURS = int(os.environ.get("READSYNC_PARDON_WINDOW_HOURS", "48"))
PARDON_COOLDOWN_DAYS = int(os.environ.get("READSYNC_PARDON_COOLDOWN_DAYS", "7"))
