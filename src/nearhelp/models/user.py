"""
User data models for NearHelp
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from ..core.clock import utc_now


TRUST_SCORE_MIN = 0.0
TRUST_SCORE_MAX = 5.0
TRUST_SCORE_DEFAULT = 3.5


class Role(Enum):
    """User roles"""
    NORMAL = "normal"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'Role':
        """Anything that is not explicitly admin is a normal user"""
        return cls.ADMIN if str(value or '').lower() == cls.ADMIN.value else cls.NORMAL


@dataclass
class User:
    """Registered user profile"""
    name: str
    email: str
    password_hash: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    skills: List[str] = field(default_factory=list)
    trust_score: float = TRUST_SCORE_DEFAULT
    verified: bool = False
    suspended: bool = False
    role: Role = Role.NORMAL
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def public_profile(self) -> Dict[str, Any]:
        """Profile returned to the account owner after register/login"""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'skills': list(self.skills),
            'trustScore': self.trust_score,
            'verified': self.verified,
            'role': self.role.value,
        }


@dataclass(frozen=True)
class Identity:
    """Verified caller identity established from a bearer credential"""
    user_id: str
    role: Role = Role.NORMAL
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
