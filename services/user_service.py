"""
User accounts and profiles.

Credentials are stored as bcrypt hashes (``passwordHash``). Documents
leave this module only through ``public_user`` which strips every
credential field.
"""
import logging
import re
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from core.database import USERS, serialize_document, utc_now
from core.exceptions import AuthError, ConflictError, NotFoundError, ValidationError
from core.security import get_password_hash, verify_legacy_password, verify_password
from schemas import LoginRequest, ProfileUpdate, SignupRequest, UserRole
from services.media_uploader import IMAGE, MediaUploader, upload_or_inline

logger = logging.getLogger(__name__)

PROFILE_FOLDER = "profiles"
CREDENTIAL_FIELDS = ("password", "passwordHash")
# Never writable through profile routes
PROTECTED_FIELDS = ("_id", "userId", "email", "createdAt") + CREDENTIAL_FIELDS


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    """
    Exact match first, then case-insensitive.

    Accounts created before emails were lower-cased keep the casing they
    were typed with until migrate_data.py normalises them.
    """
    typed = (email or "").strip()
    if not typed:
        return None
    return db[USERS].find_one({"email": typed}) or db[USERS].find_one(
        {"email": {"$regex": f"^{re.escape(typed)}$", "$options": "i"}}
    )


def public_user(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return serialize_document({k: v for k, v in user.items() if k not in CREDENTIAL_FIELDS})


def generate_user_id(role: str) -> str:
    return f"{role.lower()}_{secrets.token_hex(8)}"


def _upload_profile_pic(uploader: MediaUploader, user_id: str, profile_pic: Optional[str]) -> Optional[str]:
    """Upload a data-URI picture; anything else is returned untouched."""
    if not profile_pic or not profile_pic.startswith("data:image"):
        return profile_pic
    public_id = f"{user_id}_profile_{int(datetime.now().timestamp() * 1000)}"
    return upload_or_inline(
        uploader,
        IMAGE,
        profile_pic,
        folder=f"{uploader.root_folder}/{PROFILE_FOLDER}",
        public_id=public_id,
    ).value


def signup(db: Database, uploader: MediaUploader, request: SignupRequest) -> Dict[str, Any]:
    if not (request.name and request.email and request.password and request.role):
        raise ValidationError("Name, email, password, and role are required")

    email = normalize_email(request.email)
    if find_by_email(db, email):
        raise ConflictError("User with this email already exists")

    role = request.role.value
    user_id = generate_user_id(role)
    now = utc_now()
    user = {
        "userId": user_id,
        "name": request.name.strip(),
        "email": email,
        "passwordHash": get_password_hash(request.password),
        "phone": request.phone or "",
        "role": role,
        "district": request.district,
        "profilePic": _upload_profile_pic(uploader, user_id, request.profilePic) or "",
        "skills": [],
        "createdAt": now,
        "updatedAt": now,
    }
    if user["district"] is None:
        del user["district"]

    try:
        db[USERS].insert_one(user)
    except DuplicateKeyError:
        raise ConflictError("User with this email already exists")
    logger.info(f"User created: {user_id}")
    return public_user(user)


def login(db: Database, request: LoginRequest) -> Dict[str, Any]:
    if not (request.email and request.password):
        raise ValidationError("Email and password are required")

    user = find_by_email(db, request.email)
    if not user:
        raise NotFoundError("User not found. Please sign up first.")

    if user.get("passwordHash"):
        ok = verify_password(request.password, user["passwordHash"])
    elif user.get("password"):
        ok = verify_legacy_password(request.password, user["password"])
        if ok:
            db[USERS].update_one(
                {"_id": user["_id"]},
                {"$set": {"passwordHash": get_password_hash(request.password)}, "$unset": {"password": ""}},
            )
            logger.info(f"Upgraded legacy credentials for {user.get('userId')}")
    else:
        ok = False

    if not ok:
        raise AuthError("Invalid password")

    logger.info(f"User logged in: {user.get('userId')}")
    return public_user(user)


def check_email(db: Database, email: Optional[str]) -> Optional[Dict[str, Any]]:
    if not email:
        raise ValidationError("Email is required")
    user = find_by_email(db, email)
    if not user:
        return None
    return {"name": user.get("name"), "role": user.get("role")}


def _profile_fields(update: ProfileUpdate) -> Dict[str, Any]:
    fields = update.model_dump(exclude_unset=True, mode="json")
    for key in PROTECTED_FIELDS:
        fields.pop(key, None)
    return fields


def upsert_profile(db: Database, uploader: MediaUploader, update: ProfileUpdate) -> Dict[str, Any]:
    if not update.userId:
        raise ValidationError("userId is required", field="userId")

    fields = _profile_fields(update)
    if "profilePic" in fields:
        fields["profilePic"] = _upload_profile_pic(uploader, update.userId, fields["profilePic"])
    fields["updatedAt"] = utc_now()

    db[USERS].update_one(
        {"userId": update.userId},
        {"$set": fields, "$setOnInsert": {"createdAt": utc_now()}},
        upsert=True,
    )
    logger.info(f"User profile saved: {update.userId}")
    return {"userId": update.userId, "profilePicUrl": fields.get("profilePic")}


def patch_profile(db: Database, uploader: MediaUploader, user_id: str, update: ProfileUpdate) -> None:
    fields = _profile_fields(update)
    if "profilePic" in fields:
        fields["profilePic"] = _upload_profile_pic(uploader, user_id, fields["profilePic"])
    fields["updatedAt"] = utc_now()

    result = db[USERS].update_one({"userId": user_id}, {"$set": fields})
    if result.matched_count == 0:
        raise NotFoundError("Profile not found")
    logger.info(f"Profile updated: {user_id}")


def get_user(db: Database, user_id: str, label: str = "User") -> Dict[str, Any]:
    user = db[USERS].find_one({"userId": user_id})
    if not user:
        raise NotFoundError(f"{label} not found")
    return public_user(user)


def list_users(db: Database, role: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"role": role} if role else {}
    return [public_user(u) for u in db[USERS].find(query).sort("createdAt", DESCENDING)]


def list_by_role(db: Database, role: UserRole) -> List[Dict[str, Any]]:
    return [public_user(u) for u in db[USERS].find({"role": role.value}).sort("name", ASCENDING)]


def update_skills(db: Database, user_id: str, skills: List[Any]) -> None:
    result = db[USERS].update_one(
        {"userId": user_id},
        {"$set": {"skills": skills, "updatedAt": utc_now()}},
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")
