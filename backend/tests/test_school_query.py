import math

from services.school_ingest import save_schools
from services.school_query import (
    find_existing_codes,
    get_filter_hierarchy,
    get_filter_options,
    list_academic_years,
    search_schools,
)


def _seed(db):
    save_schools(
        db,
        [
            {"udise_code": "101", "state": "Karnataka", "district": "Mysuru", "block": "Hunsur", "ay": "2023-24"},
            {"udise_code": "102", "state": "Karnataka", "district": "Mysuru", "block": "Nanjangud", "ay": "2023-24"},
            {"udise_code": "103", "state": "Karnataka", "district": "Udupi", "block": "Karkala", "ay": "2024-25"},
            {"udise_code": "201", "state": "Kerala", "district": "Kollam", "block": "", "ay": "2024-25"},
            {"udise_code": "202", "state": "Kerala", "district": "Idukki", "block": "Adimali", "ay": None},
            {"udise_code": "301", "state": None, "district": "Nowhere", "block": "Lost", "ay": "2022-23"},
        ],
    )


def test_missing_table_reads_as_empty(db_session):
    assert search_schools(db_session) == ([], 0)
    assert get_filter_hierarchy(db_session) == {}
    assert find_existing_codes(db_session, ["1"]) == []
    assert list_academic_years(db_session) == []
    assert get_filter_options(db_session) == {
        "states": [],
        "districtsByState": {},
        "blocksByStateDistrict": {},
        "academicYears": [],
    }


def test_search_filters_are_conjunctive(db_session):
    _seed(db_session)

    rows, total = search_schools(db_session, state="Karnataka")
    assert total == 3
    assert {r["udise_code"] for r in rows} == {"101", "102", "103"}

    rows, total = search_schools(db_session, state="Karnataka", districts=["Udupi", "Kollam"])
    assert total == 1
    assert rows[0]["udise_code"] == "103"

    rows, total = search_schools(db_session, districts=["Udupi", "Kollam"])
    assert total == 2

    _, total = search_schools(db_session)
    assert total == 6


def test_search_on_missing_column_matches_nothing(db_session):
    save_schools(db_session, [{"udise_code": "1", "school_name": "A"}])
    assert search_schools(db_session, state="Karnataka") == ([], 0)
    rows, total = search_schools(db_session)
    assert total == 1 and rows[0]["school_name"] == "A"


def test_pages_cover_filtered_set_exactly_once(db_session):
    save_schools(db_session, [{"udise_code": str(i), "state": "X" if i % 3 else "Y"} for i in range(1, 21)])
    _, total = search_schools(db_session, state="X", limit=1)
    limit = 4

    seen = []
    for page in range(1, math.ceil(total / limit) + 1):
        rows, page_total = search_schools(db_session, state="X", page=page, limit=limit)
        assert page_total == total
        assert len(rows) <= limit
        seen.extend(r["udise_code"] for r in rows)

    assert len(seen) == len(set(seen)) == total
    rows, _ = search_schools(db_session, state="X", page=99, limit=limit)
    assert rows == []


def test_filter_hierarchy_groups_districts_by_state(db_session):
    _seed(db_session)
    assert get_filter_hierarchy(db_session) == {
        "Karnataka": ["Mysuru", "Udupi"],
        "Kerala": ["Idukki", "Kollam"],
    }


def test_find_existing_codes(db_session):
    _seed(db_session)
    assert find_existing_codes(db_session, ["999", "102", "101"]) == ["102", "101"]
    assert find_existing_codes(db_session, ["101", "103"], ay="2024-25") == ["103"]
    assert find_existing_codes(db_session, []) == []


def test_academic_years_skip_sentinel_and_sort_descending(db_session):
    _seed(db_session)
    assert list_academic_years(db_session) == ["2024-25", "2023-24", "2022-23"]


def test_filter_options(db_session):
    _seed(db_session)
    options = get_filter_options(db_session)

    assert options["states"] == ["Karnataka", "Kerala"]
    assert options["districtsByState"] == {
        "Karnataka": ["Mysuru", "Udupi"],
        "Kerala": ["Idukki", "Kollam"],
    }
    assert options["blocksByStateDistrict"] == {
        "Karnataka": {"Mysuru": ["Hunsur", "Nanjangud"], "Udupi": ["Karkala"]},
        "Kerala": {"Idukki": ["Adimali"]},
    }
    assert options["academicYears"] == ["2024-25", "2023-24", "2022-23"]
