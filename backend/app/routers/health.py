from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.common import ok, fail, meta_now

router = APIRouter(prefix="/api/health", tags=["health"])

@router.get("")
def healthcheck():
    return ok(
        data={"status": "ok"},
        meta=meta_now()
    )

@router.get("/db")
def db_healthcheck(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        return fail("DB_UNAVAILABLE", str(exc), status_code=503)
    return ok(data={"status": "ok", "database": db.bind.dialect.name}, meta=meta_now())
