"""
Read-side queries over workout sessions and rep images.
"""
import logging
import math
from collections import defaultdict
from typing import Any, Dict, List

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

from core.database import REP_IMAGES, WORKOUT_SESSIONS, parse_int, serialize_document

logger = logging.getLogger(__name__)

EXCELLENT = "Excellent"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _number(value: Any) -> float:
    """Stored counter as a number; unmigrated strings are read like parseInt."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if value is None:
        return 0
    return parse_int(value) or 0


def reps_for_session(db: Database, session_id: str) -> List[Dict[str, Any]]:
    reps = db[REP_IMAGES].find({"sessionId": session_id}).sort("repNumber", ASCENDING)
    return serialize_document(list(reps))


def _rep_detail(rep: Dict[str, Any]) -> Dict[str, Any]:
    detail = {"repNumber": rep.get("repNumber"), "correct": rep.get("correct")}
    details = rep.get("details")
    if isinstance(details, dict):
        detail.update(details)
    return detail


def list_by_athlete(db: Database, athlete_name: str) -> List[Dict[str, Any]]:
    """All sessions for an athlete, newest first, each joined with its reps."""
    sessions = list(
        db[WORKOUT_SESSIONS].find({"athleteName": athlete_name}).sort("timestamp", DESCENDING)
    )
    if not sessions:
        return []

    session_ids = [str(s["_id"]) for s in sessions]
    reps_by_session: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for rep in db[REP_IMAGES].find({"sessionId": {"$in": session_ids}}).sort("repNumber", ASCENDING):
        reps_by_session[rep["sessionId"]].append(rep)

    workouts = []
    for session in sessions:
        reps = reps_by_session.get(str(session["_id"]), [])
        session["screenshots"] = [
            r.get("imageUrl") or r.get("imageData") for r in reps if r.get("imageUrl") or r.get("imageData")
        ]
        session["repDetails"] = [_rep_detail(r) for r in reps]
        workouts.append(session)

    logger.info(f"Found {len(workouts)} workouts for {athlete_name}")
    return serialize_document(workouts)


def list_athletes(db: Database) -> List[Dict[str, Any]]:
    """
    Athlete roster derived from sessions.

    ``athleteProfilePic`` is the first value the store yields for the group,
    not necessarily the most recent one.
    """
    pipeline = [
        {
            "$group": {
                "_id": "$athleteName",
                "workoutCount": {"$sum": 1},
                "lastWorkout": {"$max": "$timestamp"},
                "athleteProfilePic": {"$first": "$athleteProfilePic"},
            }
        },
        {
            "$project": {
                "_id": 0,
                "name": "$_id",
                "workoutCount": 1,
                "lastWorkout": 1,
                "athleteProfilePic": 1,
            }
        },
        {"$sort": {"lastWorkout": -1}},
    ]
    return serialize_document(list(db[WORKOUT_SESSIONS].aggregate(pipeline)))


def stats_for_user(db: Database, user_id: str) -> Dict[str, int]:
    sessions = list(db[WORKOUT_SESSIONS].find({"athleteId": user_id}))
    count = len(sessions)
    if count == 0:
        return {"totalWorkouts": 0, "bestScore": 0, "avgAccuracy": 0, "formQuality": 0, "consistency": 0}

    excellent = sum(1 for s in sessions if s.get("formScore") == EXCELLENT)
    return {
        "totalWorkouts": count,
        "bestScore": int(max(_number(s.get("totalReps")) for s in sessions)),
        "avgAccuracy": _round_half_up(sum(_number(s.get("accuracy")) for s in sessions) / count),
        "formQuality": _round_half_up(excellent / count * 100),
        # Placeholder heuristic kept for the profile cards
        "consistency": 85 if count >= 5 else count * 15,
    }
