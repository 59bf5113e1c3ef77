import json
import logging
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from services.school_schema import (
    SCHOOL_TABLE_NAME,
    SENTINEL,
    clean_field_names,
    migration_lock,
    natural_key,
    reconcile_school_table,
)

logger = logging.getLogger(__name__)

# Postgres caps a statement at 65535 bind parameters, SQLite at 32766.
MAX_BIND_PARAMS = 30000

_INSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def normalize_value(value: Any) -> str:
    if value is None:
        return SENTINEL
    if isinstance(value, str):
        return value if value != "" else SENTINEL
    if isinstance(value, (dict, list, tuple, bool)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def normalize_records(records: list[dict], fields: list[str]) -> list[dict[str, str]]:
    rows = []
    for record in records:
        values = {str(k).strip(): v for k, v in record.items()}
        rows.append({field: normalize_value(values.get(field)) for field in fields})
    return rows


def validate_records(records: Any) -> list[dict]:
    if not isinstance(records, list) or not records:
        raise ValueError("No data provided")
    if not all(isinstance(record, dict) for record in records):
        raise ValueError("Every record must be a JSON object")
    return records


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig)


def _insert_rows(conn, table: Table, rows: list[dict[str, str]], key: tuple[str, ...]) -> int:
    builder = _INSERT_BUILDERS.get(conn.dialect.name)
    if builder is None:
        raise RuntimeError(f"Unsupported database dialect: {conn.dialect.name}")

    chunk_size = max(1, MAX_BIND_PARAMS // max(1, len(rows[0])))
    inserted = 0
    for start in range(0, len(rows), chunk_size):
        chunk = rows[start : start + chunk_size]
        stmt = builder(table).values(chunk).on_conflict_do_nothing(index_elements=list(key))
        result = conn.execute(stmt)
        inserted += max(result.rowcount or 0, 0)
    return inserted


def save_schools(
    db: Session,
    records: Any,
    table_name: str = SCHOOL_TABLE_NAME,
) -> dict[str, int]:
    """
    Persist a batch of school records, skipping rows whose natural key is
    already stored.

    The field set comes from the first record. Schema reconciliation and the
    insert share one transaction, which is rolled back on any error.
    """
    records = validate_records(records)
    fields = clean_field_names(records[0])
    if not fields:
        raise ValueError("Records have no fields")

    key = natural_key(fields)
    rows = normalize_records(records, fields)

    conn = db.connection()
    # non-postgres locks are process-wide, so the commit happens under the lock
    with migration_lock(conn, table_name):
        try:
            table = reconcile_school_table(conn, fields, table_name=table_name)
            inserted = _insert_rows(conn, table, rows, key)
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(
        "SAVE: table=%s fields=%s rows=%s inserted=%s key=%s",
        table_name,
        len(fields),
        len(rows),
        inserted,
        ",".join(key),
    )
    return {"count": inserted}
