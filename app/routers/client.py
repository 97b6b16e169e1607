"""Client (signed-in user) endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.dependencies.auth import require_user_session
from app.dependencies.rate_limit import api_rate_limit
from app.schemas.security import MonthlyActivity
from app.schemas.session import UserSession
from app.services.security_monitor import SecurityMonitor

router = APIRouter(prefix="/client", tags=["client"])


@router.get("/activity", response_model=list[MonthlyActivity])
async def my_activity(
    current_user: UserSession = Depends(require_user_session),
    db: Session = Depends(get_db),
    _: None = Depends(api_rate_limit),
):
    """Monthly activity counts for the last six months"""
    return SecurityMonitor.get_monthly_activity(db, current_user.user_id)
