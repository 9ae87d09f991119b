"""
Workout session endpoints.

Sessions carry their rep images in a separate collection keyed by
``sessionId``; see services.session_ingestion for the write protocol.
"""
import logging

from fastapi import APIRouter, Depends
from pymongo.database import Database

from core.database import get_db
from schemas import SessionCreate
from services import session_ingestion, session_queries
from services.media_uploader import MediaUploader, get_media_uploader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/add")
def add_session(
    payload: SessionCreate,
    db: Database = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    """Store a workout session together with its rep images."""
    result = session_ingestion.ingest_session(db, uploader, payload)
    return {"success": True, **result, "message": "Session and reps saved successfully!"}


@router.get("/all-athletes")
def all_athletes(db: Database = Depends(get_db)):
    athletes = session_queries.list_athletes(db)
    logger.info(f"Found {len(athletes)} athletes")
    return {"success": True, "athletes": athletes, "count": len(athletes)}


@router.get("/athlete/{athlete_name}")
def athlete_workouts(athlete_name: str, db: Database = Depends(get_db)):
    workouts = session_queries.list_by_athlete(db, athlete_name)
    return {"success": True, "workouts": workouts, "count": len(workouts)}


@router.get("/{session_id}/reps")
def session_reps(session_id: str, db: Database = Depends(get_db)):
    reps = session_queries.reps_for_session(db, session_id)
    return {"success": True, "reps": reps, "count": len(reps)}


@router.delete("/{session_id}")
def delete_session(session_id: str, db: Database = Depends(get_db)):
    deleted_reps = session_ingestion.delete_session(db, session_id)
    return {"success": True, "message": "Workout deleted successfully", "deletedReps": deleted_reps}


legacy_router = APIRouter(tags=["sessions"])


@legacy_router.post("/save-workout")
def save_workout(
    payload: SessionCreate,
    db: Database = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    """Older clients post here; same behaviour as /sessions/add."""
    return add_session(payload, db, uploader)
