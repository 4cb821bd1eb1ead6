import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "attendance_sync_db"),
}

QR_TOKEN_SECRET = os.getenv("QR_TOKEN_SECRET", "please-set-QR_TOKEN_SECRET")

DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "attendance_sync.log")

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))

KIOSK_API_BASE_URL = os.getenv("KIOSK_API_BASE_URL", "http://localhost:5000")
KIOSK_TENANT_ID = os.getenv("KIOSK_TENANT_ID", "")
KIOSK_BRANCH_ID = os.getenv("KIOSK_BRANCH_ID", "")
KIOSK_DEVICE_CODE = os.getenv("KIOSK_DEVICE_CODE", "")
KIOSK_DEVICE_NAME = os.getenv("KIOSK_DEVICE_NAME", "")
KIOSK_LOCATION_LABEL = os.getenv("KIOSK_LOCATION_LABEL", "")
KIOSK_SCAN_POINT_TYPE = os.getenv("KIOSK_SCAN_POINT_TYPE", "GATE")
KIOSK_SUBJECT_TYPE = os.getenv("KIOSK_SUBJECT_TYPE", "LEARNER")
KIOSK_QUEUE_PATH = os.getenv("KIOSK_QUEUE_PATH", "/var/lib/attendance-kiosk/queue.sqlite3")
KIOSK_HTTP_TIMEOUT_SECONDS = float(os.getenv("KIOSK_HTTP_TIMEOUT_SECONDS", "10"))
KIOSK_SYNC_INTERVAL_SECONDS = float(os.getenv("KIOSK_SYNC_INTERVAL_SECONDS", "60"))
KIOSK_HEARTBEAT_INTERVAL_SECONDS = float(os.getenv("KIOSK_HEARTBEAT_INTERVAL_SECONDS", "60"))
KIOSK_DISPLAY_RESET_SECONDS = float(os.getenv("KIOSK_DISPLAY_RESET_SECONDS", "5"))
