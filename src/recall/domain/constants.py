"""Centralized constants for the recall scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Time ----------
MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
DEFAULT_ROLLOVER_HOUR = 4

# ---------- Ease ----------
EASE_MIN_PERMILLE = 1300
EASE_MAX_PERMILLE = 4900
EASE_DEFAULT_PERMILLE = 2500
EASE_LAPSE_PENALTY = 200
EASE_HARD_PENALTY = 150
EASE_EASY_BONUS = 150

# ---------- Deck defaults ----------
DEFAULT_LEARNING_STEPS = (1, 10)
DEFAULT_RELEARNING_STEPS = (10,)
DEFAULT_GRADUATING_INTERVAL = 1
DEFAULT_EASY_INTERVAL = 4
DEFAULT_MAXIMUM_INTERVAL = 36500
DEFAULT_LEECH_THRESHOLD = 8
DEFAULT_NEW_PER_DAY = 20
DEFAULT_REVIEWS_PER_DAY = 200
DEFAULT_LEARN_AHEAD_MINUTES = 20

# ---------- Queue Builder ----------
NEW_CARD_SPACING = 5  # one new card after every N due cards

# ---------- Statistics ----------
MATURE_INTERVAL_DAYS = 21
VERY_MATURE_INTERVAL_DAYS = 90
DEFAULT_FORECAST_DAYS = 30
DEFAULT_ANSWER_TIME_MS = 6000
NEW_CARD_ANSWER_TIME_MS = 8000
