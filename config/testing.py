SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": "localhost",
    "port": 3306,
    "user": "root",
    "password": "",
    "database": "geofence_attendance_test",
}

STORE_BACKEND = "memory"

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

AUTO_INIT_DB = False
AUTO_SEED_DB = False

# Tests drive sync/sweep/heartbeat explicitly; no scheduler thread.
MONITORING_ENABLED = False
HEARTBEAT_INTERVAL_SECONDS = 120
SWEEP_INTERVAL_SECONDS = 300
MONITOR_SYNC_INTERVAL_SECONDS = 60
LOCATION_TIMEOUT_SECONDS = 0.05
LOCATION_MAX_AGE_SECONDS = 60
LOCATION_FAILURE_THRESHOLD = 3
WARNING_FRACTION = 0.8
