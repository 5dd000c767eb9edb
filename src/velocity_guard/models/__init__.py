"""SQLAlchemy models exports."""

from .affiliate import Affiliate, AffiliateStatus
from .base import Base, TimestampMixin
from .enforcement import AuditLog, ReviewFlag, ReviewFlagStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "Affiliate",
    "AffiliateStatus",
    "ReviewFlag",
    "ReviewFlagStatus",
    "AuditLog",
]
