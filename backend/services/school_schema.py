"""
Field registry for the school table.

The school table has no fixed schema: every field name seen in an ingested
batch becomes a TEXT column. This module is the only place that changes the
table's structure. Reads go through `load_school_table`, which reflects the
current column set into a SQLAlchemy `Table`.
"""

import logging
import os
import threading
import zlib
from contextlib import contextmanager

from sqlalchemy import Column, Index, Integer, MetaData, Table, Text, inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import NoSuchTableError

logger = logging.getLogger(__name__)

SCHOOL_TABLE_NAME = os.getenv("SCHOOL_TABLE_NAME", "udise_data")
ID_COLUMN = "local_id"
CODE_FIELD = "udise_code"
YEAR_FIELD = "ay"
SENTINEL = "NA"

_migration_lock = threading.RLock()


def natural_key(fields) -> tuple[str, ...]:
    if YEAR_FIELD in fields:
        return (CODE_FIELD, YEAR_FIELD)
    return (CODE_FIELD,)


def unique_index_name(key: tuple[str, ...], table_name: str = SCHOOL_TABLE_NAME) -> str:
    return f"uq_{table_name}_{'_'.join(key)}"


def _managed_index_names(table_name: str) -> set[str]:
    return {
        unique_index_name((CODE_FIELD,), table_name),
        unique_index_name((CODE_FIELD, YEAR_FIELD), table_name),
    }


def clean_field_names(record: dict) -> list[str]:
    """Field names of a record, minus blanks and the reserved id column."""
    fields: list[str] = []
    for key in record.keys():
        name = str(key).strip()
        if not name or name == ID_COLUMN or name in fields:
            continue
        fields.append(name)
    return fields


def load_school_table(bind, table_name: str = SCHOOL_TABLE_NAME) -> Table | None:
    try:
        return Table(table_name, MetaData(), autoload_with=bind)
    except NoSuchTableError:
        return None


@contextmanager
def migration_lock(conn: Connection, table_name: str = SCHOOL_TABLE_NAME):
    """
    Serialize structural changes to `table_name`.

    On PostgreSQL this is a transaction-scoped advisory lock, released when
    the transaction on `conn` ends. Elsewhere it is a process-wide reentrant
    lock held for the body of the `with`, so callers that own the transaction
    should commit or roll back inside it.
    """
    if conn.dialect.name == "postgresql":
        conn.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": zlib.crc32(table_name.encode("utf-8"))},
        )
        yield
        return
    with _migration_lock:
        yield


def _text_column(name: str) -> Column:
    return Column(name, Text, server_default=SENTINEL)


def _create_table(conn: Connection, table_name: str, fields: list[str]) -> None:
    logger.info("SCHEMA: creating table=%s columns=%s", table_name, len(fields))
    table = Table(
        table_name,
        MetaData(),
        Column(ID_COLUMN, Integer, primary_key=True, autoincrement=True),
        *[_text_column(field) for field in fields],
    )
    table.create(conn)


def _add_missing_columns(conn: Connection, table_name: str, fields: list[str]) -> list[str]:
    existing = {c["name"] for c in inspect(conn).get_columns(table_name)}
    preparer = conn.dialect.identifier_preparer
    added = []
    for field in fields:
        if field in existing:
            continue
        conn.execute(
            text(
                f"ALTER TABLE {preparer.quote(table_name)} "
                f"ADD COLUMN {preparer.quote(field)} TEXT DEFAULT '{SENTINEL}'"
            )
        )
        existing.add(field)
        added.append(field)
    if added:
        logger.info("SCHEMA: table=%s added columns=%s", table_name, added)
    return added


def _sync_unique_index(conn: Connection, table_name: str, key: tuple[str, ...]) -> None:
    wanted = unique_index_name(key, table_name)
    managed = _managed_index_names(table_name)
    present = {
        ix["name"]
        for ix in inspect(conn).get_indexes(table_name)
        if ix.get("name") in managed
    }
    preparer = conn.dialect.identifier_preparer

    for stale in sorted(present - {wanted}):
        logger.warning("SCHEMA: table=%s dropping stale unique index=%s", table_name, stale)
        conn.execute(text(f"DROP INDEX IF EXISTS {preparer.quote(stale)}"))

    if wanted not in present:
        table = load_school_table(conn, table_name)
        Index(wanted, *[table.c[col] for col in key], unique=True).create(conn)
        logger.info("SCHEMA: table=%s unique index=%s on %s", table_name, wanted, key)


def reconcile_school_table(
    conn: Connection,
    fields: list[str],
    table_name: str = SCHOOL_TABLE_NAME,
) -> Table:
    """
    Make sure `table_name` exists and has a column for every name in `fields`,
    and that its natural-key unique index matches the shape of `fields`.

    Runs on the caller's connection so it shares the ingest transaction.
    Callers that commit should hold `migration_lock` until they do.
    Returns the reflected table.
    """
    if CODE_FIELD not in fields:
        raise ValueError(f"Records must include a '{CODE_FIELD}' field.")

    with migration_lock(conn, table_name):
        if not inspect(conn).has_table(table_name):
            _create_table(conn, table_name, fields)
        else:
            _add_missing_columns(conn, table_name, fields)
        _sync_unique_index(conn, table_name, natural_key(fields))
        return load_school_table(conn, table_name)
