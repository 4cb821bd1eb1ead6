import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_sync_test"),
}

QR_TOKEN_SECRET = "test-qr-secret"

DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"
LOG_FILE = None

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

KIOSK_API_BASE_URL = "http://kiosk-test.invalid"
KIOSK_TENANT_ID = "t1"
KIOSK_BRANCH_ID = "b1"
KIOSK_DEVICE_CODE = "gate-test"
KIOSK_DEVICE_NAME = "Test gate"
KIOSK_LOCATION_LABEL = "Test"
KIOSK_SCAN_POINT_TYPE = "GATE"
KIOSK_SUBJECT_TYPE = "LEARNER"
KIOSK_QUEUE_PATH = os.getenv("KIOSK_QUEUE_PATH", "kiosk_queue_test.sqlite3")
KIOSK_HTTP_TIMEOUT_SECONDS = 2.0
KIOSK_SYNC_INTERVAL_SECONDS = 60.0
KIOSK_HEARTBEAT_INTERVAL_SECONDS = 60.0
KIOSK_DISPLAY_RESET_SECONDS = 5.0
