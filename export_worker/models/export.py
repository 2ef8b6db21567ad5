import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

# Storage path recorded for assets that only exist inside the job's zip.
PACKED_IN_ZIP = "N/A (packed in zip)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExportStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    PACKAGING = "packaging"
    UPLOADED = "uploaded"
    READY = "ready"
    FAILED = "failed"
    CANCELED = "canceled"


# Statuses in which a claimed job is owned by a worker, in forward order.
ACTIVE_STATUSES = (ExportStatus.PROCESSING, ExportStatus.PACKAGING, ExportStatus.UPLOADED)
TERMINAL_STATUSES = (ExportStatus.READY, ExportStatus.FAILED, ExportStatus.CANCELED)


class AssetType(str, enum.Enum):
    VIDEO = "video"
    THUMBNAIL = "thumbnail"
    METADATA = "metadata"


def _text_enum(enum_cls: type[enum.Enum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class ExportJob(Base):
    __tablename__ = "export_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    content_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    formats: Mapped[list] = mapped_column(JSONType, nullable=False)
    options: Mapped[dict | None] = mapped_column(JSONType, default=dict, nullable=True)
    brand_kit_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    source_video_path: Mapped[str] = mapped_column(Text, nullable=False)
    storage_bucket: Mapped[str | None] = mapped_column(Text, default="source-videos", nullable=True)

    status: Mapped[ExportStatus] = mapped_column(
        _text_enum(ExportStatus), default=ExportStatus.QUEUED, nullable=False, index=True
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    zip_storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    zip_size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    worker_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    assets: Mapped[list["ExportAsset"]] = relationship(
        "ExportAsset", back_populates="job", cascade="all, delete-orphan", passive_deletes=True
    )


class ExportAsset(Base):
    __tablename__ = "export_assets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("export_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[AssetType] = mapped_column(_text_enum(AssetType), nullable=False)
    variant: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    checksum: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    job: Mapped["ExportJob"] = relationship("ExportJob", back_populates="assets")


class BrandKit(Base):
    """Read-only for the worker; only the precomputed filter columns are used."""

    __tablename__ = "brand_kits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    overlay_filter: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_overlay_filter: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
