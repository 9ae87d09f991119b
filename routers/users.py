"""
User profile endpoints.

Static paths are declared before ``/{user_id}`` so that e.g.
``/users/coaches`` is never read as a user id.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pymongo.database import Database

from core.database import get_db
from schemas import ProfileUpdate, SkillsUpdate, UserRole
from services import session_queries, social_graph, user_service
from services.media_uploader import MediaUploader, get_media_uploader

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/profile")
def upsert_profile(
    update: ProfileUpdate,
    db: Database = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    result = user_service.upsert_profile(db, uploader, update)
    return {"success": True, "message": "Profile saved successfully", **result}


@router.patch("/profile/{user_id}")
def patch_profile(
    user_id: str,
    update: ProfileUpdate,
    db: Database = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    user_service.patch_profile(db, uploader, user_id, update)
    return {"success": True, "message": "Profile updated successfully", "userId": user_id}


@router.get("/profile/{user_id}")
def get_profile(user_id: str, db: Database = Depends(get_db)):
    profile = user_service.get_user(db, user_id, label="Profile")
    return {"success": True, "profile": profile}


@router.get("/all")
def all_users(role: Optional[str] = None, db: Database = Depends(get_db)):
    users = user_service.list_users(db, role)
    logger.info(f"Found {len(users)} users")
    return {"success": True, "users": users, "count": len(users)}


@router.get("/coaches")
def coaches(db: Database = Depends(get_db)):
    found = user_service.list_by_role(db, UserRole.COACH)
    return {"success": True, "coaches": found, "count": len(found)}


@router.get("/athletes")
def athletes(db: Database = Depends(get_db)):
    found = user_service.list_by_role(db, UserRole.ATHLETE)
    return {"success": True, "athletes": found, "count": len(found)}


@router.get("/discover")
def discover(userId: Optional[str] = None, db: Database = Depends(get_db)):
    """Users the caller is not yet connected with."""
    return social_graph.discover(db, userId)


@router.get("/{user_id}/stats")
def user_stats(user_id: str, db: Database = Depends(get_db)):
    return session_queries.stats_for_user(db, user_id)


@router.post("/{user_id}/skills")
def update_skills(user_id: str, update: SkillsUpdate, db: Database = Depends(get_db)):
    user_service.update_skills(db, user_id, update.skills)
    return {"success": True, "message": "Skills updated"}


@router.get("/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return user_service.get_user(db, user_id)
