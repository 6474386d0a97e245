"""
Marketplace Data Models

Defines the dataclasses and enumerations shared by the tutor directory,
search filter and session booking components.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tutor_marketplace.errors import ValidationError


SUBJECTS = [
    "Mathematics",
    "Science",
    "English",
    "History",
    "Programming",
    "Physics",
    "Chemistry",
    "Biology",
    "Economics",
    "Foreign Languages",
]

GRADE_LEVELS = [
    "Elementary",
    "Middle School",
    "High School",
    "College",
    "Adult Education",
]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as returned by PostgREST ('Z' suffix allowed)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace('Z', '+00:00'))


class Role(str, Enum):
    """Role claim attached to every identity."""
    STUDENT = "student"
    TUTOR = "tutor"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown role: {value!r}", field="role")


class SessionStatus(str, Enum):
    """Lifecycle statuses of a tutoring session."""
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> "SessionStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown session status: {value!r}", field="status")

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.REJECTED, SessionStatus.CANCELLED)


class PaymentOption(str, Enum):
    """Payment split a student may choose for an accepted session."""
    HALF_UPFRONT = "50% upfront"
    FULL_UPFRONT = "100% upfront"
    THIRD_UPFRONT = "1/3 upfront"

    @classmethod
    def parse(cls, value: Any) -> "PaymentOption":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip())
        except ValueError:
            allowed = ", ".join(option.value for option in cls)
            raise ValidationError(
                f"Unrecognized payment option {value!r} (expected one of: {allowed})",
                field="payment_option",
            )


@dataclass(frozen=True)
class Identity:
    """Authenticated identity plus its role claim."""
    id: str
    role: Role
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class TutorProfile:
    """Searchable view of a tutor: identity name joined with the portfolio."""
    id: str
    name: str
    subjects: List[str] = field(default_factory=list)
    grade_level: Optional[str] = None
    location: str = ""
    hourly_rate: float = 0.0
    rating: float = 0.0
    image_url: Optional[str] = None


@dataclass
class SearchCriteria:
    """
    Filter criteria for a tutor search.

    Every field is optional; ``None`` or an empty string means "no constraint".
    """
    subject: Optional[str] = None
    grade_level: Optional[str] = None
    location: Optional[str] = None
    max_price: Optional[float] = None

    def is_empty(self) -> bool:
        return not self.subject and not self.grade_level and not self.location and self.max_price is None


@dataclass
class TutorPortfolio:
    """A tutor's editable teaching offer (one per tutor identity)."""
    tutor_id: str
    subjects: List[str] = field(default_factory=list)
    experience: Optional[str] = None
    hourly_rate: float = 0.0
    location: Optional[str] = None
    grade_level: Optional[str] = None
    availability_start: str = "09:00"
    availability_end: str = "17:00"
    rating: float = 0.0
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Columns a caller supplies on upsert; the rest are owned by the store.
    EDITABLE_FIELDS = (
        "subjects",
        "experience",
        "hourly_rate",
        "location",
        "grade_level",
        "availability_start",
        "availability_end",
    )

    def editable_values(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.EDITABLE_FIELDS}


@dataclass
class TutoringSession:
    """A requested or scheduled tutoring engagement between one student and one tutor."""
    id: str
    student_id: str
    tutor_id: str
    subject: str
    scheduled_at: datetime
    status: SessionStatus = SessionStatus.REQUESTED
    grade_level: Optional[str] = None
    location: str = "Online"
    price_per_hour: float = 0.0
    payment_option: Optional[PaymentOption] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def party_role(self, identity_id: str) -> Optional[Role]:
        """Which side of this session ``identity_id`` is on, if any."""
        if identity_id == self.student_id:
            return Role.STUDENT
        if identity_id == self.tutor_id:
            return Role.TUTOR
        return None


@dataclass
class SessionBooking:
    """Result of creating a session: the stored record plus non-blocking warnings."""
    session: TutoringSession
    warnings: List[str] = field(default_factory=list)
