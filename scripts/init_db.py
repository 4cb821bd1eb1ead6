"""Create the database (if needed) and apply database/schema.sql."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.attendance_sync.attendance_sync.common.logging import configure_logging
from src.attendance_sync.attendance_sync.database.bootstrap import apply_schema, list_tables
from src.attendance_sync.attendance_sync.main import SCHEMA_PATH


def main() -> None:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), None)
    db_config = dict(settings.DB_CONFIG)

    apply_schema(db_config, schema_path=SCHEMA_PATH)
    tables = list_tables(db_config)
    print(f"OK: {db_config.get('database')}@{db_config.get('host')} ready with {len(tables)} tables: {', '.join(tables)}")


if __name__ == "__main__":
    main()
