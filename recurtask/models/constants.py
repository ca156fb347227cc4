"""Constants for recurtask.

This module centralizes all magic numbers and default values used throughout the application.
"""

import os

from dotenv import load_dotenv

load_dotenv()


# Duration input bounds (inclusive)
MAX_DURATION_YEARS = 99
MAX_DURATION_MONTHS = 11
MAX_DURATION_DAYS = 30
MAX_DURATION_HOURS = 23
MAX_DURATION_MINUTES = 59

# Duration approximation used by to_minutes/from_minutes/calculate_duration.
# Stored durations depend on these exact factors; do not change them.
MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 24 * MINUTES_PER_HOUR
MINUTES_PER_MONTH = 30 * MINUTES_PER_DAY
MINUTES_PER_YEAR = 365 * MINUTES_PER_DAY

# Recurrence pattern limits
MIN_INTERVAL = 1
MAX_INTERVAL = 99
MIN_END_OCCURRENCES = 1
MAX_END_OCCURRENCES = 999

# Task field limits
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000

# Timezone used when a pattern does not name one
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

# Occurrence queries
MAX_OCCURRENCES_PER_QUERY = 500
OCCURRENCE_PREVIEW_COUNT = int(os.getenv("OCCURRENCE_PREVIEW_COUNT", "5"))
