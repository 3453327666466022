"""
SRS Constants and Parameters

Grades, card states, and the default algorithm parameters in one place.
Per-deck settings override the defaults field by field (see settings.py).
"""

from enum import Enum, IntEnum


# ---- Grades ----

class Grade(IntEnum):
    """Learner's self-reported recall quality."""
    AGAIN = 0   # Retrieval failed
    HARD = 1    # Retrieved with high effort
    GOOD = 2    # Retrieved normally
    EASY = 3    # Retrieved fluently


# ---- Card States ----

class CardPhase(str, Enum):
    """Position of a card in the scheduling state machine."""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


STEP_PHASES = frozenset({CardPhase.LEARNING, CardPhase.RELEARNING})
REVIEW_PHASES = frozenset({CardPhase.REVIEW, CardPhase.RELEARNING})


# ---- Ease ----

EASE_FLOOR = 1.3         # Ease factor never drops below this
DEFAULT_EASE = 2.5       # Ease factor of a card that has never graduated


# ---- Default Algorithm Parameters ----

LEARNING_STEPS = (1.0, 10.0)     # Minutes
RELEARNING_STEPS = (10.0,)       # Minutes
GRADUATING_INTERVAL = 1          # Days
EASY_INTERVAL = 4                # Days
MINIMUM_INTERVAL = 1             # Days
MAXIMUM_INTERVAL = 36500         # Days (100 years)

EASY_EASE_BONUS = 0.15           # Ease added on Easy
HARD_EASE_PENALTY = 0.15         # Ease removed on Hard
LAPSE_EASE_PENALTY = 0.20        # Ease removed on a lapse

HARD_INTERVAL_FACTOR = 0.8       # Replaces the ease factor on Hard
EASY_BONUS = 1.3                 # Extra interval multiplier on Easy
INTERVAL_MODIFIER = 1.0          # Global interval multiplier
INTERVAL_MODIFIER_BOUNDS = (0.5, 2.0)

NEW_INTERVAL_FRACTION = 0.2      # Share of the old interval kept after a lapse
LEECH_THRESHOLD = 8              # Consecutive lapses that flag a leech


# ---- Queue Defaults ----

NEW_CARDS_PER_DAY = 20
MAX_REVIEWS_PER_DAY = 200
NEW_CARD_SPACING = 4             # One new card per N due cards


# ---- Time ----

MINUTES_PER_DAY = 1440.0
