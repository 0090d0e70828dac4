"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_M = 6_371_000

# Automatic monitoring and check-in open 60 minutes before the local start.
CHECK_IN_OPEN_MINUTES = 60
# Manual join flows allow joining 30 minutes before the local start.
EARLY_CHECK_IN_MINUTES = 30
# Events without an end time last this long.
DEFAULT_EVENT_DURATION_HOURS = 3
SLIGHTLY_LATE_MINUTES = 15

DEFAULT_GEOFENCE_RADIUS_M = 100
DEFAULT_MAX_TIME_OUTSIDE_SECONDS = 15 * 60
DEFAULT_WARNING_FRACTION = 0.8

DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 120
DEFAULT_SWEEP_INTERVAL_SECONDS = 300
DEFAULT_MONITOR_SYNC_INTERVAL_SECONDS = 60
DEFAULT_LOCATION_TIMEOUT_SECONDS = 10
DEFAULT_LOCATION_MAX_AGE_SECONDS = 60
DEFAULT_LOCATION_FAILURE_THRESHOLD = 3

DEFAULT_CAS_RETRIES = 3
