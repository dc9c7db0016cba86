"""Centralized constants for the mneme scheduling engine.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
DEFAULT_BASE_EASE = 250  # 2.5, stored x100
MIN_EASE = 130  # 1.3, stored x100
MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6
PENALTY_INTERVAL = 1
DEFAULT_MAXIMUM_INTERVAL = 365
DEFAULT_INITIAL_INTERVALS = (0, 3, 7, 14, 30)

# ---------- Load balancing ----------
LOAD_BALANCE_THRESHOLD = 7  # intervals above this many days get jitter
LOAD_BALANCE_RATIO = 0.05
LOAD_BALANCE_MAX_FUZZ = 3

# ---------- FSRS ----------
DEFAULT_REQUEST_RETENTION = 0.9
DEFAULT_FSRS_MAXIMUM_INTERVAL = 36500
# FSRS-4.5 default weights
DEFAULT_FSRS_WEIGHTS = (
    0.4, 0.6, 2.4, 5.8, 4.93, 0.94, 0.86, 0.01, 1.49,
    0.14, 0.94, 2.18, 0.05, 0.34, 1.26, 0.29, 2.61,
)  # fmt: skip
DEFAULT_LEARNING_STEPS = (1, 10)  # minutes
DEFAULT_RELEARNING_STEPS = (10,)  # minutes
FSRS_DIFFICULTY_SCALE = 10.0
FSRS_MIN_DIFFICULTY = 1.0
FSRS_MAX_DIFFICULTY = 10.0
# Pre-FSRS-6 weight vectors use a fixed forgetting-curve decay and no same-day exponent
LEGACY_FSRS_DECAY = 0.5
LEGACY_FSRS_SHORT_TERM_EXPONENT = 0.0
FSRS6_WEIGHT_COUNT = 21

# ---------- History ----------
HISTORY_LIMIT = 1000

# ---------- Stats ----------
DEFAULT_STABILITY_THRESHOLD = 7.0
DEFAULT_LAPSE_THRESHOLD = 1
DEFAULT_MIN_RETRIEVABILITY = 0.7
VOLATILITY_WINDOW = 10
UPCOMING_DAYS = 7

# ---------- Persistence ----------
DATA_FILE_NAME = "data.json"
ITEM_EXTENSIONS = (".md",)

# A prune that would remove every schedule is refused once there are this many.
PRUNE_SAFETY_MINIMUM = 5
