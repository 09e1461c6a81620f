"""Centralized constants for the rehearser scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ease ----------
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 10.0

# ---------- Intervals ----------
INITIAL_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 365
SOFT_SKIP_STEP_MINUTES = 1

# ---------- Scores ----------
MIN_SCORE = 0
MAX_SCORE = 5
PASSING_SCORE = 3  # below this the interval ladder resets
GOOD_SCORE = 4  # at or above this the ladder advances and the streak grows

# ---------- Mastery ----------
EXPERIENCED_REVIEW_COUNT = 5  # more reviews than this earns the mastery bonus

# ---------- Difficulty ----------
DEFAULT_DIFFICULTY_ADJUSTMENT = 1.0
POSTPONE_DIFFICULTY_FACTOR = 0.95
DEFAULT_DIFFICULTY_FLOOR = 0.5
DEFAULT_DIFFICULTY_CEILING = 2.0

# ---------- Calibration ----------
MIN_CALIBRATION_SAMPLES = 3
EASY_CATEGORY_MEAN = 4.0
HARD_CATEGORY_MEAN = 2.0
EASY_CATEGORY_FACTOR = 1.05
HARD_CATEGORY_FACTOR = 0.95
UNCATEGORIZED = "uncategorized"

# ---------- Statistics ----------
WEEK_DAYS = 7
MONTH_DAYS = 30
