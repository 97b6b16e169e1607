from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.database import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(db: Session = Depends(get_db)):
    """Service status; the database is checked with a trivial query"""
    db.execute(text("SELECT 1"))
    return {"status": "ok", "service": settings.APP_NAME, "env": settings.ENV}
