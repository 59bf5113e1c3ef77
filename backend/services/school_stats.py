"""
Dashboard statistics over the school table.

Each figure comes from its own read-only query. The queries run
concurrently, each on its own pooled connection, and the results are merged
into one response once all of them finish.
"""

import asyncio
import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import Numeric, Table, and_, case, cast, func, literal, select
from sqlalchemy.engine import Engine

from services.school_query import build_filter_clauses
from services.school_schema import CODE_FIELD, SCHOOL_TABLE_NAME, SENTINEL, YEAR_FIELD, load_school_table

logger = logging.getLogger(__name__)

TOP_N = 5
DIGITS_PATTERN = "^[0-9]+$"
STATS_FILTER_FIELDS = ("state", "district", "block", YEAR_FIELD)

# response key -> column
DISTINCT_COUNT_COLUMNS = {
    "uniqueSchools": CODE_FIELD,
    "totalStates": "state",
    "totalDistricts": "district",
    "totalBlocks": "block",
    "totalClusters": "cluster",
    "totalVillages": "village",
    "totalAcademicYears": YEAR_FIELD,
}

# Upstream batches have spelled the same metric differently over time; every
# candidate column present in the table contributes to the metric's sum.
METRIC_COLUMN_ALIASES = {
    "totalStudents": (
        "total_students",
        "total_student",
        "totalStudents",
        "total_enrolment",
        "total_enrollment",
        "enrolment_total",
    ),
    "totalBoys": (
        "total_boys",
        "total_boy",
        "totalBoys",
        "boys",
        "enrolment_boys",
    ),
    "totalGirls": (
        "total_girls",
        "total_girl",
        "totalGirls",
        "girls",
        "enrolment_girls",
    ),
}

TOP_VALUE_COLUMNS = {
    "topStates": "state",
    "topDistricts": "district",
    "topBlocks": "block",
}

DISTRIBUTION_COLUMNS = {
    "schoolsByCategory": "school_category",
    "schoolsByManagement": "school_management",
}


def empty_stats() -> dict:
    stats: dict = {"totalSchools": 0}
    stats.update({key: 0 for key in DISTINCT_COUNT_COLUMNS})
    stats.update({key: 0 for key in METRIC_COLUMN_ALIASES})
    stats.update({key: [] for key in TOP_VALUE_COLUMNS})
    stats.update({key: [] for key in DISTRIBUTION_COLUMNS})
    return stats


def numeric_value(column):
    """
    CAST of a text column to NUMERIC for rows holding plain digits, 0 for
    everything else ("NA", blanks, NULL, free text). NUMERIC has no upper
    bound, so long digit strings do not overflow.
    """
    usable = and_(
        column.isnot(None),
        column != SENTINEL,
        column != "",
        column.regexp_match(DIGITS_PATTERN),
    )
    return case((usable, cast(column, Numeric)), else_=0)


def _count_query(table: Table, clauses: list):
    return select(func.count()).select_from(table).where(*clauses)


def _distinct_counts_query(table: Table, clauses: list):
    columns = []
    for key, name in DISTINCT_COUNT_COLUMNS.items():
        if name in table.c:
            columns.append(func.count(func.nullif(table.c[name], SENTINEL).distinct()).label(key))
        else:
            columns.append(literal(0).label(key))
    return select(*columns).select_from(table).where(*clauses)


def _metric_sums_query(table: Table, clauses: list):
    columns = []
    for key, candidates in METRIC_COLUMN_ALIASES.items():
        present = [table.c[name] for name in candidates if name in table.c]
        if not present:
            columns.append(literal(0).label(key))
            continue
        total = func.coalesce(func.sum(numeric_value(present[0])), 0)
        for column in present[1:]:
            total = total + func.coalesce(func.sum(numeric_value(column)), 0)
        columns.append(total.label(key))
    return select(*columns).select_from(table).where(*clauses)


def _grouped_counts_query(table: Table, clauses: list, name: str, limit: int | None = None):
    column = table.c[name]
    count = func.count().label("count")
    query = select(column.label("name"), count).where(*clauses)
    if limit is not None:
        # top-N lists leave out the sentinel, distributions keep every row
        query = query.where(column != SENTINEL).limit(limit)
    return query.group_by(column).order_by(count.desc(), column)


def _run_scalar(engine: Engine, query) -> int:
    with engine.connect() as conn:
        return int(conn.execute(query).scalar() or 0)


def _run_row(engine: Engine, query) -> dict[str, int]:
    with engine.connect() as conn:
        row = conn.execute(query).mappings().first()
    return {key: int(value or 0) for key, value in (row or {}).items()}


def _run_grouped(engine: Engine, query) -> list[dict]:
    with engine.connect() as conn:
        rows = conn.execute(query).mappings().all()
    return [{"name": row["name"], "count": int(row["count"] or 0)} for row in rows]


async def _empty_list() -> list:
    return []


async def compute_dashboard_stats(
    engine: Engine,
    filters: dict | None = None,
    table_name: str = SCHOOL_TABLE_NAME,
) -> dict:
    table = await run_in_threadpool(load_school_table, engine, table_name)
    if table is None:
        return empty_stats()

    filters = {key: (filters or {}).get(key) for key in STATS_FILTER_FIELDS}
    clauses = build_filter_clauses(table, filters)

    grouped_jobs = {}
    for key, name in {**TOP_VALUE_COLUMNS, **DISTRIBUTION_COLUMNS}.items():
        if name not in table.c:
            grouped_jobs[key] = _empty_list()
            continue
        limit = TOP_N if key in TOP_VALUE_COLUMNS else None
        grouped_jobs[key] = run_in_threadpool(
            _run_grouped, engine, _grouped_counts_query(table, clauses, name, limit)
        )

    results = await asyncio.gather(
        run_in_threadpool(_run_scalar, engine, _count_query(table, clauses)),
        run_in_threadpool(_run_row, engine, _distinct_counts_query(table, clauses)),
        run_in_threadpool(_run_row, engine, _metric_sums_query(table, clauses)),
        *grouped_jobs.values(),
    )
    total, distinct_counts, metric_sums, *grouped = results

    stats = empty_stats()
    stats["totalSchools"] = total
    stats.update(distinct_counts)
    stats.update(metric_sums)
    stats.update(dict(zip(grouped_jobs.keys(), grouped)))

    logger.info(
        "STATS: table=%s filters=%s total=%s",
        table_name,
        {k: v for k, v in filters.items() if v},
        total,
    )
    return stats
