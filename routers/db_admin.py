"""
Administrative read-only views of the stored data.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from core.database import get_db
from services import db_admin

router = APIRouter(prefix="/db", tags=["db"])


@router.get("/health")
def db_health(db: Database = Depends(get_db)):
    return db_admin.health(db)


@router.get("/stats")
def db_stats(db: Database = Depends(get_db)):
    return db_admin.stats(db)


@router.get("/users")
def db_users(db: Database = Depends(get_db)):
    users = db_admin.users(db)
    return {"success": True, "users": users, "count": len(users)}


@router.get("/sessions")
def db_sessions(limit: Optional[int] = None, db: Database = Depends(get_db)):
    sessions = db_admin.sessions(db, limit)
    return {"success": True, "sessions": sessions, "count": len(sessions)}


@router.get("/sessions/{session_id}")
def db_session(session_id: str, db: Database = Depends(get_db)):
    return {"success": True, "session": db_admin.session_by_id(db, session_id)}


@router.get("/reps")
def db_reps(limit: Optional[int] = None, sessionId: Optional[str] = None, db: Database = Depends(get_db)):
    reps = db_admin.reps(db, limit, sessionId)
    return {"success": True, "reps": reps, "count": len(reps)}


@router.get("/athletes")
def db_athletes(db: Database = Depends(get_db)):
    athletes = db_admin.athletes(db)
    return {"success": True, "athletes": athletes, "count": len(athletes)}
