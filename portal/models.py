# Enums and pydantic models for the four portal tables and their forms

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(str, Enum):
    ADMIN = "admin"
    CITIZEN = "citizen"

class ComplaintCategory(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    SANITATION = "sanitation"
    TRAFFIC = "traffic"
    ELECTRICITY = "electricity"
    WATER = "water"
    OTHER = "other"

class ComplaintStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    REJECTED = "rejected"

class ComplaintPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class AmenityType(str, Enum):
    HOSPITAL = "hospital"
    SCHOOL = "school"
    PARK = "park"
    LIBRARY = "library"
    POLICE_STATION = "police_station"
    FIRE_STATION = "fire_station"
    OTHER = "other"

class AnnouncementCategory(str, Enum):
    GENERAL = "general"
    EMERGENCY = "emergency"
    EVENT = "event"
    MAINTENANCE = "maintenance"


def _required_text(value):
    if not isinstance(value, str):
        raise ValueError("must be a string")
    value = value.strip()
    if not value:
        raise ValueError("is required")
    return value

def _optional_text(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("must be a string")
    return value.strip() or None


# ---------------------------------------------------------------------------
# Records (rows as read back from the store)
# ---------------------------------------------------------------------------
class Record(BaseModel):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class Profile(Record):
    email: str
    full_name: str
    role: Role = Role.CITIZEN
    phone: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, v):
        # Anything that is not an admin gets the citizen dashboard
        if isinstance(v, Role):
            return v
        return Role.ADMIN if v == Role.ADMIN.value else Role.CITIZEN

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

class Complaint(Record):
    citizen_id: str
    title: str
    description: str
    category: ComplaintCategory
    location: str
    status: ComplaintStatus = ComplaintStatus.PENDING
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    admin_response: Optional[str] = None

class Amenity(Record):
    name: str
    type: AmenityType
    address: str
    contact: Optional[str] = None
    operating_hours: Optional[str] = None
    description: Optional[str] = None

class Announcement(Record):
    title: str
    content: str
    category: AnnouncementCategory = AnnouncementCategory.GENERAL
    published_by: Optional[str] = None
    is_active: bool = True


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------
class ComplaintCreate(BaseModel):
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    category: ComplaintCategory = ComplaintCategory.INFRASTRUCTURE
    location: str = Field(..., max_length=500)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM

    @field_validator("title", "description", "location", mode="before")
    @classmethod
    def required(cls, v):
        return _required_text(v)

class ComplaintTriage(BaseModel):
    status: ComplaintStatus
    admin_response: Optional[str] = Field(None, max_length=5000)

    @field_validator("admin_response", mode="before")
    @classmethod
    def blank_response(cls, v):
        return _optional_text(v)

class AmenityForm(BaseModel):
    name: str = Field(..., max_length=200)
    type: AmenityType = AmenityType.HOSPITAL
    address: str = Field(..., max_length=500)
    contact: Optional[str] = Field(None, max_length=100)
    operating_hours: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("name", "address", mode="before")
    @classmethod
    def required(cls, v):
        return _required_text(v)

    @field_validator("contact", "operating_hours", "description", mode="before")
    @classmethod
    def optional(cls, v):
        return _optional_text(v)

class AnnouncementForm(BaseModel):
    title: str = Field(..., max_length=200)
    content: str = Field(..., max_length=10000)
    category: AnnouncementCategory = AnnouncementCategory.GENERAL
    is_active: Optional[bool] = None

    @field_validator("title", "content", mode="before")
    @classmethod
    def required(cls, v):
        return _required_text(v)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
class Identity(BaseModel):
    id: str
    email: str

class SignUp(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., max_length=200)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = _required_text(v).lower()
        if "@" not in v:
            raise ValueError("is not a valid email address")
        return v

    @field_validator("full_name", mode="before")
    @classmethod
    def required(cls, v):
        return _required_text(v)

    @field_validator("phone", mode="before")
    @classmethod
    def optional(cls, v):
        return _optional_text(v)

class SignIn(BaseModel):
    email: str
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: Profile


# ---------------------------------------------------------------------------
# Admin overview
# ---------------------------------------------------------------------------
class DashboardStats(BaseModel):
    total_complaints: int = 0
    pending_complaints: int = 0
    in_progress_complaints: int = 0
    resolved_complaints: int = 0
    total_citizens: int = 0
    total_amenities: int = 0
    active_announcements: int = 0
