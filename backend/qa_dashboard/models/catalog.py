"""
Catalog models: the sites, devices and features a run is keyed on.
"""

import enum
from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from qa_dashboard.database import Base


class FeatureKind(str, enum.Enum):
    """Automation script selector, independent of the editable feature name."""

    CHAT = "chat"
    SCROLL_HOME = "scroll_home"
    AGE_VERIFICATION = "age_verification"
    PREMIUM_SUBSCRIPTION = "premium_subscription"
    SLOT_MACHINE_IFRAME = "slot_machine_iframe"


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)  # host, e.g. "senti.live"
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Feature(Base):
    __tablename__ = "features"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    kind: Mapped[str | None] = mapped_column(String(40), nullable=True)  # FeatureKind value, NULL = no script
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def feature_kind(self) -> FeatureKind | None:
        if not self.kind:
            return None
        try:
            return FeatureKind(self.kind)
        except ValueError:
            return None
