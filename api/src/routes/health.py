from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.src.db.database import get_db

router = APIRouter(tags=["health"])

@router.get("/health")
def health_check():
    return {"status": "healthy", "service": "stageline-api"}

@router.get("/health/db")
def db_health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "database": str(e)}
