"""Centralized constants for msamiati.

All magic numbers and storage keys live here so every layer
imports from a single source of truth.
"""

# ---------- Scheduler ----------
DAY_MS = 24 * 60 * 60 * 1000
INITIAL_EASE = 2.2
MIN_EASE = 1.3
MAX_EASE = 2.8
MIN_INTERVAL_DAYS = 0.04  # roughly one hour
MAX_INTERVAL_DAYS = 180.0

# ---------- State ----------
REVIEW_LOG_LIMIT = 1000

# Aggregate view over the whole remote catalog.
ALL_WORDS_DECK = "모든 단어"

# Decks mirroring remote catalog categories (levels, then themes).
CLOUD_CATEGORY_DECKS = [
    "입문",
    "초급",
    "중급",
    "고급",
    "여행",
    "비즈니스",
    "쇼핑",
    "위기탈출",
]

DEFAULT_DECK_NAMES = [ALL_WORDS_DECK, *CLOUD_CATEGORY_DECKS]

# Local deck that `add` files words into when none is named.
MY_WORDS_DECK = "내 단어장"

# ---------- Durable persistence ----------
STATE_KEY = "msamiati.state"
HASH_KEY = "msamiati.hash"
KEY_STORAGE_KEY = "msamiati.key"

AES_KEY_BITS = 256
NONCE_BYTES = 12
ENCRYPTED_PREFIX = "ENC1:"
OBFUSCATED_PREFIX = "OBF:"

DEFAULT_SAVE_DEBOUNCE = 0.3  # seconds

# ---------- Offline cache / catalog ----------
MODES = ("sw", "ko")
TOMBSTONE_PREFIX = "__deleted__"
DEFAULT_WORDS_PER_DAY = 40
DEFAULT_SYNC_PAGE_SIZE = 1000
CACHE_DB_FILENAME = "offline-cache.sqlite3"
CATALOG_TABLE = "generated_vocab"

# ---------- HTTP ----------
REQUEST_TIMEOUT = 30.0
RESPONSIVENESS_TIMEOUT = 2.0
