"""
Account endpoints: signup, login and the email existence probe.
"""
from fastapi import APIRouter, Depends, status
from pymongo.database import Database

from core.database import get_db
from schemas import EmailCheckRequest, LoginRequest, SignupRequest
from services import user_service
from services.media_uploader import MediaUploader, get_media_uploader

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    db: Database = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    user = user_service.signup(db, uploader, request)
    return {"success": True, "message": "Account created successfully", "user": user}


@router.post("/login")
def login(request: LoginRequest, db: Database = Depends(get_db)):
    user = user_service.login(db, request)
    return {"success": True, "message": "Login successful", "user": user}


@router.post("/check-email")
def check_email(request: EmailCheckRequest, db: Database = Depends(get_db)):
    user = user_service.check_email(db, request.email)
    return {"success": True, "exists": user is not None, "user": user}
