"""Admin endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.dependencies.auth import require_admin_session
from app.dependencies.rate_limit import api_rate_limit
from app.schemas.security import SecurityMetrics, TimeRange
from app.schemas.session import AdminSession
from app.services.security_monitor import SecurityMonitor

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/security/metrics", response_model=SecurityMetrics)
async def security_metrics(
    time_range: TimeRange = Query("day", alias="timeRange"),
    current_admin: AdminSession = Depends(require_admin_session),
    db: Session = Depends(get_db),
    _: None = Depends(api_rate_limit),
):
    return SecurityMonitor.get_security_metrics(db, time_range)
