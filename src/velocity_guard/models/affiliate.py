"""Affiliate models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class AffiliateStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BANNED = "banned"


class Affiliate(TimestampMixin, Base):
    __tablename__ = "affiliates"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), default="")
    category: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[AffiliateStatus] = mapped_column(default=AffiliateStatus.ACTIVE)
    status_reason: Mapped[Optional[str]] = mapped_column(Text)


__all__ = ["Affiliate", "AffiliateStatus"]
