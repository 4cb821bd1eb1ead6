"""Idempotent schema bootstrap for development and the init script.

Every statement in ``database/schema.sql`` is ``CREATE ... IF NOT EXISTS``, so
running it on each start-up (``AUTO_INIT_DB=1``) is safe.
"""

from __future__ import annotations

import re
from contextlib import closing
from pathlib import Path
from typing import Iterator

import mysql.connector

from ..common.logging import get_logger
from .connection import DBConfig

logger = get_logger(__name__)

_DB_SELECTION = re.compile(r"^\s*(CREATE\s+DATABASE|USE)\b[^;]*;\s*$", re.IGNORECASE | re.MULTILINE)
_LINE_COMMENT = re.compile(r"^\s*--.*$", re.MULTILINE)


def _open(config: DBConfig, *, with_database: bool = True):
    return closing(mysql.connector.connect(**config.connect_kwargs(with_database=with_database)))


def split_statements(sql: str) -> Iterator[str]:
    """Yield statements separated by ';' outside quoted literals."""
    start = 0
    quote: str | None = None
    i = 0
    while i < len(sql):
        ch = sql[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch == ";":
            stmt = sql[start:i].strip()
            if stmt:
                yield stmt
            start = i + 1
        i += 1

    tail = sql[start:].strip()
    if tail:
        yield tail


def ensure_database_exists(db_config: dict) -> None:
    config = DBConfig.from_dict(db_config)
    with _open(config, with_database=False) as conn, closing(conn.cursor()) as cur:
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{config.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()


def apply_sql_file(db_config: dict, *, sql_path: str | Path) -> int:
    """Run a .sql file against the configured database; returns the statement count.

    ``CREATE DATABASE`` / ``USE`` lines are dropped so the file works under any DB name.
    """
    sql = Path(sql_path).read_text(encoding="utf-8")
    sql = _LINE_COMMENT.sub("", _DB_SELECTION.sub("", sql))

    count = 0
    with _open(DBConfig.from_dict(db_config)) as conn, closing(conn.cursor()) as cur:
        for stmt in split_statements(sql):
            cur.execute(stmt)
            count += 1
        conn.commit()
    return count


def apply_schema(db_config: dict, *, schema_path: str | Path) -> None:
    ensure_database_exists(db_config)
    count = apply_sql_file(db_config, sql_path=schema_path)
    logger.info("schema applied from %s (%d statements)", schema_path, count)


def list_tables(db_config: dict) -> list[str]:
    with _open(DBConfig.from_dict(db_config)) as conn, closing(conn.cursor()) as cur:
        cur.execute("SHOW TABLES")
        return sorted(row[0] for row in cur.fetchall())
