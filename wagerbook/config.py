"""
Configuration constants for the wagerbook settlement ledger.
"""

# ===== SETTLEMENT =====

# Tolerance used when checking that a settlement is zero-sum
BALANCE_EPSILON = 1e-9

# Starting balance for every participant (replay resets to this)
STARTING_BALANCE = 0.0

# ===== SUBSTITUTIONS =====

# FIFA allows up to 5 substitutions per team. Reported, never enforced.
SUBSTITUTION_LIMIT = 5

# Timeline label for substitution entries
SUBSTITUTION_LABEL_FORMAT = "Substitution: {off} → {on}"

# ===== LIVE FEED =====

# Live match feed API
FEED_BASE_URL = "https://api.football-data.org/v4"
FEED_API_KEY_ENV = 'WAGERBOOK_FEED_API_KEY'

# Polling
DEFAULT_POLL_INTERVAL = 30  # seconds between feed polls
REQUEST_TIMEOUT = 10        # seconds per HTTP request
REQUEST_MAX_RETRIES = 3

# Feed event type strings -> EventType values
FEED_EVENT_TYPE_MAP = {
    'goal': 'goal',
    'assist': 'assist',
    'yellow_card': 'yellow_card',
    'red_card': 'red_card',
    'penalty': 'penalty',
    'penalty_missed': 'penalty_missed',
    'own_goal': 'own_goal',
}

# Feed type string used for substitutions
FEED_SUBSTITUTION_TYPE = 'substitution'

# Minimum fuzzy name score (0-100) when an external id can't be resolved
FUZZY_MATCH_THRESHOLD = 90

# ===== STORAGE =====

SESSIONS_DIR = 'data/sessions'
OUTPUT_DIR = 'data/output'

# ===== LOGGING =====

LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
