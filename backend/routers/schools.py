import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.deps import get_db, get_engine
from services.school_ingest import is_unique_violation, save_schools as save_school_records
from services.school_query import (
    find_existing_codes,
    get_filter_hierarchy,
    get_filter_options,
    list_academic_years,
    search_schools as search_school_records,
)
from services.school_stats import compute_dashboard_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["schools"])


class SchoolSearchPayload(BaseModel):
    state: str | None = None
    districts: list[str] | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(100, ge=1, le=1000)


def _database_error(message: str, exc: Exception) -> HTTPException:
    return HTTPException(status_code=500, detail={"message": message, "error": str(exc)})


@router.post("/save-schools")
def save_schools(
    payload: Any = Body(None),
    db: Session = Depends(get_db),
):
    if not isinstance(payload, list) or not payload:
        raise HTTPException(status_code=400, detail="No data provided")

    try:
        result = save_school_records(db, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            logger.exception("SAVE failed")
            raise _database_error("Database error", exc)
        logger.warning("SAVE: duplicate key escaped conflict clause: %s", exc.orig)
        return {
            "success": True,
            "message": "Some records were skipped (already exist).",
            "count": 0,
        }
    except SQLAlchemyError as exc:
        logger.exception("SAVE failed")
        raise _database_error("Database error", exc)

    return {
        "success": True,
        "message": f"Saved {result['count']} records.",
        "count": result["count"],
    }


@router.get("/filters")
def get_filters(db: Session = Depends(get_db)):
    try:
        return get_filter_hierarchy(db)
    except SQLAlchemyError as exc:
        logger.exception("FILTERS failed")
        raise _database_error("Failed to fetch filters", exc)


@router.post("/schools/search")
def search_schools(payload: SchoolSearchPayload, db: Session = Depends(get_db)):
    try:
        rows, total = search_school_records(
            db,
            state=payload.state,
            districts=payload.districts,
            page=payload.page,
            limit=payload.limit,
        )
    except SQLAlchemyError as exc:
        logger.exception("SEARCH failed")
        raise _database_error("Failed to fetch data", exc)

    return {"data": rows, "total": total, "page": payload.page, "limit": payload.limit}


@router.post("/check-existing")
def check_existing(
    payload: Any = Body(None),
    db: Session = Depends(get_db),
):
    codes = payload.get("codes") if isinstance(payload, dict) else None
    if not isinstance(codes, list):
        raise HTTPException(status_code=400, detail="Invalid codes array")

    ay = payload.get("ay") or None
    try:
        existing = find_existing_codes(db, codes, ay=ay)
    except SQLAlchemyError as exc:
        logger.exception("CHECK-EXISTING failed")
        raise _database_error("Failed to check existing records", exc)

    return {"existing": existing}


@router.get("/dashboard/stats")
async def dashboard_stats(
    state: str | None = Query(None),
    district: str | None = Query(None),
    block: str | None = Query(None),
    ay: str | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    filters = {"state": state, "district": district, "block": block, "ay": ay}
    try:
        return await compute_dashboard_stats(engine, filters)
    except SQLAlchemyError as exc:
        logger.exception("STATS failed")
        raise _database_error("Failed to fetch dashboard statistics", exc)


@router.get("/academic-years")
def academic_years(db: Session = Depends(get_db)):
    try:
        years = list_academic_years(db)
    except SQLAlchemyError as exc:
        logger.exception("ACADEMIC-YEARS failed")
        raise _database_error("Failed to fetch academic years", exc)
    return {"success": True, "academicYears": years}


@router.get("/filter-options")
def filter_options(db: Session = Depends(get_db)):
    try:
        options = get_filter_options(db)
    except SQLAlchemyError as exc:
        logger.exception("FILTER-OPTIONS failed")
        raise _database_error("Failed to fetch filter options", exc)
    return {"success": True, **options}
