from sqlalchemy import Table, and_, false, func, select
from sqlalchemy.orm import Session

from services.school_schema import (
    CODE_FIELD,
    ID_COLUMN,
    SCHOOL_TABLE_NAME,
    SENTINEL,
    YEAR_FIELD,
    load_school_table,
)


def _present(value) -> bool:
    return value is not None and value != "" and value != SENTINEL


def _not_sentinel(column):
    return and_(column.isnot(None), column != SENTINEL, column != "")


def build_filter_clauses(table: Table, filters: dict) -> list:
    """
    Exact-match clauses for every filter that is set. Values given as a list
    match any of their members. A filter on a column the table does not have
    yields a clause that matches nothing.
    """
    clauses = []
    for name, value in filters.items():
        if value is None or value == "" or value == []:
            continue
        if name not in table.c:
            clauses.append(false())
            continue
        column = table.c[name]
        if isinstance(value, (list, tuple, set)):
            clauses.append(column.in_([str(v) for v in value]))
        else:
            clauses.append(column == str(value))
    return clauses


def search_schools(
    db: Session,
    state: str | None = None,
    districts: list[str] | None = None,
    page: int = 1,
    limit: int = 100,
    table_name: str = SCHOOL_TABLE_NAME,
) -> tuple[list[dict], int]:
    table = load_school_table(db.connection(), table_name)
    if table is None:
        return [], 0

    clauses = build_filter_clauses(table, {"state": state, "district": districts})
    page = max(1, page)
    offset = (page - 1) * limit

    query = select(table).where(*clauses)
    if ID_COLUMN in table.c:
        query = query.order_by(table.c[ID_COLUMN])
    rows = db.execute(query.offset(offset).limit(limit)).mappings().all()

    total = db.execute(select(func.count()).select_from(table).where(*clauses)).scalar() or 0
    return [dict(row) for row in rows], int(total)


def get_filter_hierarchy(db: Session, table_name: str = SCHOOL_TABLE_NAME) -> dict[str, list[str]]:
    table = load_school_table(db.connection(), table_name)
    if table is None or "state" not in table.c:
        return {}

    state = table.c.state
    if "district" not in table.c:
        states = db.execute(
            select(state).where(_not_sentinel(state)).distinct().order_by(state)
        ).scalars()
        return {s: [] for s in states}

    district = table.c.district
    rows = db.execute(
        select(state, district)
        .where(_not_sentinel(state))
        .distinct()
        .order_by(state, district)
    ).all()

    hierarchy: dict[str, list[str]] = {}
    for row_state, row_district in rows:
        districts = hierarchy.setdefault(row_state, [])
        if _present(row_district) and row_district not in districts:
            districts.append(row_district)
    return hierarchy


def find_existing_codes(
    db: Session,
    codes: list[str],
    ay: str | None = None,
    table_name: str = SCHOOL_TABLE_NAME,
) -> list[str]:
    if not codes:
        return []

    table = load_school_table(db.connection(), table_name)
    if table is None or CODE_FIELD not in table.c:
        return []

    clauses = build_filter_clauses(table, {YEAR_FIELD: ay})
    code = table.c[CODE_FIELD]
    rows = db.execute(
        select(code).where(code.in_([str(c) for c in codes]), *clauses).distinct()
    ).scalars()
    found = set(rows)
    # keep the caller's ordering
    return [str(c) for c in dict.fromkeys(codes) if str(c) in found]


def list_academic_years(db: Session, table_name: str = SCHOOL_TABLE_NAME) -> list[str]:
    table = load_school_table(db.connection(), table_name)
    if table is None or YEAR_FIELD not in table.c:
        return []

    ay = table.c[YEAR_FIELD]
    years = db.execute(select(ay).where(_not_sentinel(ay)).distinct()).scalars()
    return sorted(years, reverse=True)


def get_filter_options(db: Session, table_name: str = SCHOOL_TABLE_NAME) -> dict:
    options = {
        "states": [],
        "districtsByState": {},
        "blocksByStateDistrict": {},
        "academicYears": list_academic_years(db, table_name),
    }

    table = load_school_table(db.connection(), table_name)
    if table is None or "state" not in table.c:
        return options

    columns = [table.c[name] for name in ("state", "district", "block") if name in table.c]
    rows = db.execute(
        select(*columns)
        .where(_not_sentinel(table.c.state))
        .distinct()
        .order_by(*columns)
    ).mappings().all()

    states: list[str] = []
    districts_by_state: dict[str, list[str]] = {}
    blocks: dict[str, dict[str, list[str]]] = {}
    for row in rows:
        row_state = row["state"]
        row_district = row.get("district")
        row_block = row.get("block")

        if row_state not in states:
            states.append(row_state)
        state_districts = districts_by_state.setdefault(row_state, [])
        if not _present(row_district):
            continue
        if row_district not in state_districts:
            state_districts.append(row_district)
        if _present(row_block):
            district_blocks = blocks.setdefault(row_state, {}).setdefault(row_district, [])
            if row_block not in district_blocks:
                district_blocks.append(row_block)

    options["states"] = states
    options["districtsByState"] = districts_by_state
    options["blocksByStateDistrict"] = blocks
    return options
