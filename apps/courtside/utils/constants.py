"""
Constants used across partner scoring, matchmaking and invites.

The scoring caps and the fallback ratings are product-tuning values; every
scoring function accepts keyword overrides for them.
"""

import os

# Skill ladder, lowest first. Ordinal position is the skill index.
SKILL_LEVELS = ["beginner", "intermediate", "advanced", "expert", "pro"]

# Great-circle distance
EARTH_RADIUS_KM = 6371.0

# Compatibility scoring (0-100)
MAX_SCORE = 100.0
RATING_DIFF_DIVISOR = 10.0  # 10 rating points = 1 score point
RATING_PENALTY_CAP = 30.0
SKILL_LEVEL_PENALTY = 10.0  # per ordinal step
DISTANCE_DIVISOR = 2.0  # 2 km = 1 score point
DISTANCE_PENALTY_CAP = 20.0
DEFAULT_MATCH_RATING = 1500.0  # midpoint used when a user has no rating

# Rating snapshot stored on registration rows when no rating exists
DEFAULT_REGISTRATION_RATING = os.getenv("DEFAULT_REGISTRATION_RATING", "3.00")
DEFAULT_RATING_FORMAT = "doubles"

# Lifetimes
INVITE_TTL_DAYS = int(os.getenv("INVITE_TTL_DAYS", "7"))
MATCH_REQUEST_TTL_HOURS = int(os.getenv("MATCH_REQUEST_TTL_HOURS", "24"))
MATCH_REQUEST_MAX_TTL_HOURS = 168
MATCH_REQUEST_MAX_DISTANCE_KM = 100.0

# Suggestions
DEFAULT_SUGGESTION_LIMIT = 10

# Invite codes: 16 random bytes -> 22 url-safe chars
INVITE_CODE_BYTES = 16
INVITE_CODE_MAX_ATTEMPTS = 5

# Partner listing skill scale (DUPR-style numeric ratings)
LISTING_SKILL_MIN = 1.0
LISTING_SKILL_MAX = 7.0
