# --------------------------------------------------
# AFFINITY
# --------------------------------------------------

# Each profile tag is worth this much, up to AFFINITY_MAX_TAGS tags
AFFINITY_TAG_WEIGHT = 2
AFFINITY_MAX_TAGS = 5

# Proximity score starts here at 0 km and loses AFFINITY_DISTANCE_PENALTY per km
AFFINITY_DISTANCE_BASE = 20
AFFINITY_DISTANCE_PENALTY = 5

# Added to the caller's own listing so it always sorts first
SELF_LISTING_BONUS = 100

# --------------------------------------------------
# PRESENCE
# --------------------------------------------------

# Raw coordinates are stored with this many decimals (~0.1 m)
COORD_DECIMALS = 6

# --------------------------------------------------
# CALLER LIMITS
# --------------------------------------------------

MESSAGE_MAX_LENGTH = 500
REPORT_DETAILS_MAX_LENGTH = 1000
