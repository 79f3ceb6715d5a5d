"""RoomComfort database models."""

from roomcomfort.models.base import Base, TimestampMixin, VersionedMixin
from roomcomfort.models.role import Role, DEFAULT_ROLES, USER_ROLE, ADMIN_ROLE
from roomcomfort.models.user import User
from roomcomfort.models.ownership import Ownership
from roomcomfort.models.threshold import Threshold, ThresholdAdjustment
from roomcomfort.models.reading import Reading, Recommendation

__all__ = [
    "Base",
    "TimestampMixin",
    "VersionedMixin",
    "Role",
    "DEFAULT_ROLES",
    "USER_ROLE",
    "ADMIN_ROLE",
    "User",
    "Ownership",
    "Threshold",
    "ThresholdAdjustment",
    "Reading",
    "Recommendation",
]
