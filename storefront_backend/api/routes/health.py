import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront_backend.db.session import db_healthcheck, get_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/", summary="Service health check")
def health_check():
    """Basic health check for the backend service (no external dependencies)."""
    return {"message": "Healthy"}


@router.get("/health/db", summary="Database health check")
def health_db_check(db: Session = Depends(get_db)):
    """
    Check connectivity of the database bound to the request session.

    Returns `ok: false` instead of an error status so load balancers can
    tell a degraded service from a dead one.
    """
    ok = db_healthcheck(db.get_bind())
    if not ok:
        logger.warning("Reporting database as unreachable")
    return {"database": "ok" if ok else "unreachable", "ok": ok}
