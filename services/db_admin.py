"""
Read-only administrative views over the document store.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.database import Database

from core.database import REP_IMAGES, USERS, WORKOUT_SESSIONS, parse_object_id, serialize_document
from core.exceptions import NotFoundError
from schemas import UserRole
from services.user_service import public_user

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20


def _limit(value: Optional[int]) -> int:
    return value if value and value > 0 else DEFAULT_LIMIT


def health(db: Database) -> Dict[str, str]:
    db.command("ping")
    return {"status": "MongoDB connected", "database": db.name}


def stats(db: Database) -> Dict[str, Any]:
    activities = db[WORKOUT_SESSIONS].aggregate([
        {"$group": {"_id": "$activityName", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ])
    return {
        "users": db[USERS].count_documents({}),
        "workoutSessions": db[WORKOUT_SESSIONS].count_documents({}),
        "repImages": db[REP_IMAGES].count_documents({}),
        "roles": {
            "athletes": db[USERS].count_documents({"role": UserRole.ATHLETE.value}),
            "coaches": db[USERS].count_documents({"role": UserRole.COACH.value}),
            "admins": db[USERS].count_documents({"role": UserRole.SAI_ADMIN.value}),
        },
        "activities": serialize_document(list(activities)),
    }


def users(db: Database) -> List[Dict[str, Any]]:
    return [public_user(u) for u in db[USERS].find({})]


def sessions(db: Database, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[WORKOUT_SESSIONS].find({}).sort("timestamp", DESCENDING).limit(_limit(limit))
    return serialize_document(list(cursor))


def session_by_id(db: Database, session_id: str) -> Dict[str, Any]:
    session = db[WORKOUT_SESSIONS].find_one({"_id": parse_object_id(session_id)})
    if not session:
        raise NotFoundError("Session not found")
    return serialize_document(session)


def reps(db: Database, limit: Optional[int] = None, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"sessionId": session_id} if session_id else {}
    return serialize_document(list(db[REP_IMAGES].find(query).limit(_limit(limit))))


def athletes(db: Database) -> List[Dict[str, Any]]:
    """Per-athlete workout count, last workout and distinct activities."""
    grouped = db[WORKOUT_SESSIONS].aggregate([
        {
            "$group": {
                "_id": "$athleteName",
                "workoutCount": {"$sum": 1},
                "lastWorkout": {"$max": "$timestamp"},
                "activities": {"$addToSet": "$activityName"},
            }
        },
        {"$sort": {"workoutCount": -1}},
    ])
    return serialize_document([
        {
            "name": a["_id"],
            "workoutCount": a["workoutCount"],
            "lastWorkout": a.get("lastWorkout"),
            "activities": [act for act in a.get("activities", []) if act],
        }
        for a in grouped
    ])
