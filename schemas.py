from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class UserRole(str, Enum):
    ATHLETE = "ATHLETE"
    COACH = "COACH"
    SAI_ADMIN = "SAI_ADMIN"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SessionMeta(BaseModel):
    """Workout session metadata. Unknown fields are stored verbatim."""
    athleteName: str = Field(min_length=1)
    athleteId: Optional[str] = None
    athleteProfilePic: Optional[str] = None
    activityName: str = Field(min_length=1)
    totalReps: int = Field(default=0, ge=0)
    correctReps: int = Field(default=0, ge=0)
    incorrectReps: int = Field(default=0, ge=0)
    duration: int = Field(default=0, ge=0)  # seconds
    accuracy: int = Field(default=0, ge=0, le=100)
    formScore: Optional[str] = None
    timestamp: Optional[datetime] = None
    # Inline payloads, replaced by pdfUrl / videoUrl before storage
    pdfDataUrl: Optional[str] = None
    videoDataUrl: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class RepImageIn(BaseModel):
    repNumber: int = Field(ge=1)
    imageData: Optional[str] = None
    imageUrl: Optional[str] = None
    correct: bool = True
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class SessionCreate(BaseModel):
    sessionMeta: SessionMeta
    repImages: List[RepImageIn] = Field(default_factory=list)


class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    phone: Optional[str] = None
    district: Optional[str] = None
    profilePic: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class EmailCheckRequest(BaseModel):
    email: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Profile fields accepted by the upsert/patch routes."""
    userId: Optional[str] = None
    name: Optional[str] = None
    role: Optional[UserRole] = None
    district: Optional[str] = None
    phone: Optional[str] = None
    profilePic: Optional[str] = None
    skills: Optional[List[Any]] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("userId")
    @classmethod
    def strip_user_id(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class SkillsUpdate(BaseModel):
    skills: List[Any] = Field(default_factory=list)


class ConnectionRequestCreate(BaseModel):
    fromUserId: Optional[str] = None
    toUserId: Optional[str] = None


class LiveRecordingRequest(BaseModel):
    activityName: Optional[str] = None
