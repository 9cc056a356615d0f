"""
Result model: one row per (site, device, feature, browser) run, with its
screenshot trail in ResultDetail.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Float, Text, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qa_dashboard.database import Base
from qa_dashboard.models.catalog import Site, Device, Feature

STATUS_PROCESSING = "processing"
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_WARNING = "warning"

RESULT_STATUSES = (STATUS_PROCESSING, STATUS_PASSED, STATUS_FAILED, STATUS_WARNING)
TERMINAL_STATUSES = (STATUS_PASSED, STATUS_FAILED, STATUS_WARNING)


class Result(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(primary_key=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), index=True)
    device_id: Mapped[int] = mapped_column(ForeignKey("devices.id"), index=True)
    feature_id: Mapped[int] = mapped_column(ForeignKey("features.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_PROCESSING, index=True)
    browser: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)  # seconds
    error_log: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    site: Mapped[Site] = relationship(lazy="joined")
    device: Mapped[Device] = relationship(lazy="joined")
    feature: Mapped[Feature] = relationship(lazy="joined")
    details: Mapped[list["ResultDetail"]] = relationship(
        back_populates="result",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ResultDetail.id",
    )


class ResultDetail(Base):
    __tablename__ = "result_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    result_id: Mapped[int] = mapped_column(ForeignKey("results.id", ondelete="CASCADE"), index=True)
    screenshot_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    result: Mapped["Result"] = relationship(back_populates="details")
