"""User entity model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else value


@dataclass
class TrainerProfile:
    """Trainer details attached to a user profile."""

    id: Any
    specialization: Optional[str] = None
    bio: Optional[str] = None
    years_experience: Optional[int] = None
    rating: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "specialization": self.specialization,
            "bio": self.bio,
            "years_experience": self.years_experience,
            "rating": float(self.rating) if self.rating is not None else None,
        }


@dataclass
class User:
    """User entity model."""

    id: Any
    email: str
    full_name: str
    password: str = ""
    phone: Optional[str] = None
    role: str = "member"
    is_active: bool = True
    email_verified: bool = False
    refresh_token: Optional[str] = None
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    last_login: Optional[datetime] = None
    login_attempts: int = 0
    locked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    trainer: Optional[TrainerProfile] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        """Build a user from a ``users`` row; unknown columns are ignored."""
        data = dict(row)
        trainer = None
        if data.get("trainer_id") is not None:
            trainer = TrainerProfile(
                id=data["trainer_id"],
                specialization=data.get("specialization"),
                bio=data.get("bio"),
                years_experience=data.get("years_experience"),
                rating=data.get("rating"),
            )
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        fields["trainer"] = trainer
        if fields.get("login_attempts") is None:
            fields["login_attempts"] = 0
        return cls(**fields)

    @property
    def first_name(self) -> str:
        return self.full_name.split()[0] if self.full_name else ""

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now

    def to_dict(self) -> Dict[str, Any]:
        """Public representation; never includes the hash or stored tokens."""
        data: Dict[str, Any] = {
            "id": str(self.id),
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "last_login": _iso(self.last_login),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if self.trainer is not None:
            data["trainer"] = self.trainer.to_dict()
        return data
