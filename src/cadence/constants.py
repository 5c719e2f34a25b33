#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

PACKAGE_NAME = "cadence"
CONFIGS_ROOT = f"{PACKAGE_NAME}.configs"
DEFAULT_SAFETY_CAP = 500
"""Upper bound on the occurrences a single expansion call emits for a rule
without a `count`. Long-running unbounded rules are truncated at this many
occurrences when the query window is large."""
OCCURRENCE_DURATION = datetime.timedelta(hours=1)
"""Every generated occurrence lasts exactly this long."""
NEXT_APPOINTMENT_HORIZON_MONTHS = 3
GENERATED_ID_PREFIX = "gen"
DEFAULT_PAGE_SIZE = 10
