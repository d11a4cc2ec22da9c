"""Centralized constants for the guessthat card cache.

All tunables and defaults live here so every layer imports from a single
source of truth.
"""

# ---------- Replenishment ----------
THRESHOLD = 30  # top up when local stock for a bucket drops below this
TOPUP_SIZE = 50  # cards requested per top-up
RESERVE = 40  # auto top-up when (stock - used in session) <= RESERVE

# ---------- Trash ----------
TRASH_TTL = 3600  # seconds a trashed card can still be restored

# ---------- Remote service / HTTP ----------
DEFAULT_API_BASE = "http://localhost:8080"
REQUEST_TIMEOUT = 30.0
DRAW_PATH = "/api/cards/draw"
DOWNLOAD_PATH = "/api/cards/download"
MAX_FORBIDDEN = 7

# ---------- Default bucket ----------
DEFAULT_LANGUAGE = "de-CH"
DEFAULT_CATEGORY = "family"
DEFAULT_DIFFICULTY = "medium"

# ---------- Play ----------
TURN_DRAW_SIZE = 100
