"""Export job queue backed by the ``export_jobs`` table.

Claims use ``SELECT ... FOR UPDATE SKIP LOCKED`` so several worker processes can
poll the same table. Every write made after the claim is conditioned on the job
still being in an active status, which turns writes against a job that was
canceled in the meantime into no-ops.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError
from sqlalchemy import case, select, update

from export_worker.core.config import settings
from export_worker.models import (
    ACTIVE_STATUSES,
    AssetType,
    BrandKit,
    ExportAsset,
    ExportJob,
    ExportStatus,
    SessionLocal,
)
from export_worker.schemas.export import (
    AssetRecord,
    BrandOverlays,
    ClaimedJob,
    JobStatusView,
    Overlay,
)

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _statuses_up_to(status: ExportStatus) -> tuple[ExportStatus, ...]:
    if status not in ACTIVE_STATUSES:
        raise ValueError(f"progress updates cannot move a job to {status.value!r}")
    return ACTIVE_STATUSES[: ACTIVE_STATUSES.index(status) + 1]


class JobQueue:
    def __init__(self, session_factory=None, worker_id: str | None = None) -> None:
        self._session_factory = session_factory or SessionLocal
        self.worker_id = worker_id or settings.worker_id

    def claim_next_job(self) -> ClaimedJob | None:
        """Move the oldest queued job to ``processing`` and return it, or None."""
        invalid: ValidationError | None = None
        db = self._session_factory()
        try:
            candidate = (
                select(ExportJob.id)
                .where(ExportJob.status == ExportStatus.QUEUED)
                .order_by(ExportJob.created_at.asc(), ExportJob.id.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            job_id = db.execute(candidate).scalar_one_or_none()
            if job_id is None:
                return None

            now = _utcnow()
            result = db.execute(
                update(ExportJob)
                .where(ExportJob.id == job_id, ExportJob.status == ExportStatus.QUEUED)
                .values(
                    status=ExportStatus.PROCESSING,
                    started_at=now,
                    updated_at=now,
                    worker_id=self.worker_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()

            row = db.get(ExportJob, job_id)
            try:
                job = ClaimedJob.model_validate(row)
            except ValidationError as e:
                invalid = e

        except Exception as e:
            db.rollback()
            logger.error("claim_failed", error=str(e))
            return None

        finally:
            db.close()

        if invalid is not None:
            logger.error("job_payload_invalid", job_id=str(job_id), error=str(invalid))
            try:
                self.mark_failed(job_id, f"Invalid export request: {invalid}")
            except Exception as e:
                logger.error("mark_failed_error", job_id=str(job_id), error=str(e))
            return None

        logger.info("job_claimed", job_id=str(job.id), user_id=job.user_id, worker_id=self.worker_id)
        return job

    def update_progress(
        self, job_id: uuid.UUID, percent: int, status: ExportStatus | None = None
    ) -> bool:
        """Raise progress (never lowers it) and optionally advance the status.

        Returns False when the job is no longer active, e.g. it was canceled.
        """
        percent = max(0, min(100, int(percent)))
        allowed = ACTIVE_STATUSES if status is None else _statuses_up_to(status)

        values = {
            "progress": case((ExportJob.progress < percent, percent), else_=ExportJob.progress),
            "updated_at": _utcnow(),
        }
        if status is not None:
            values["status"] = status

        db = self._session_factory()
        try:
            result = db.execute(
                update(ExportJob)
                .where(ExportJob.id == job_id, ExportJob.status.in_(allowed))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def mark_ready(
        self,
        job_id: uuid.UUID,
        zip_path: str,
        zip_size_bytes: int,
        assets: Iterable[AssetRecord] = (),
    ) -> bool:
        """Finish a job successfully, recording its assets in the same transaction."""
        now = _utcnow()
        db = self._session_factory()
        try:
            result = db.execute(
                update(ExportJob)
                .where(ExportJob.id == job_id, ExportJob.status.in_(ACTIVE_STATUSES))
                .values(
                    status=ExportStatus.READY,
                    progress=100,
                    zip_storage_path=zip_path,
                    zip_size_bytes=zip_size_bytes,
                    completed_at=now,
                    updated_at=now,
                    error=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                logger.warning("job_no_longer_active", job_id=str(job_id), action="mark_ready")
                return False

            for asset in assets:
                db.add(_asset_row(job_id, asset))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("job_ready", job_id=str(job_id), zip_path=zip_path, size=zip_size_bytes)
        return True

    def mark_failed(self, job_id: uuid.UUID, error_message: str) -> bool:
        """Finish a job as failed. Progress is left as it was."""
        now = _utcnow()
        db = self._session_factory()
        try:
            result = db.execute(
                update(ExportJob)
                .where(ExportJob.id == job_id, ExportJob.status.in_(ACTIVE_STATUSES))
                .values(
                    status=ExportStatus.FAILED,
                    error=error_message,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if result.rowcount != 1:
            logger.warning("job_no_longer_active", job_id=str(job_id), action="mark_failed")
            return False
        logger.info("job_failed", job_id=str(job_id), error=error_message)
        return True

    def record_asset(
        self,
        job_id: uuid.UUID,
        kind: AssetType,
        variant: str,
        storage_path: str,
        size_bytes: int,
        checksum: str,
    ) -> uuid.UUID:
        """Append a single asset row."""
        record = AssetRecord(
            type=kind, variant=variant, storage_path=storage_path, size_bytes=size_bytes, checksum=checksum
        )
        db = self._session_factory()
        try:
            row = _asset_row(job_id, record)
            db.add(row)
            db.commit()
            return row.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_brand_overlays(self, brand_kit_id: uuid.UUID) -> BrandOverlays | None:
        """Overlay filters of an active brand kit, or None if it is missing or inactive."""
        db = self._session_factory()
        try:
            kit = db.execute(
                select(BrandKit).where(BrandKit.id == brand_kit_id, BrandKit.is_active.is_(True))
            ).scalar_one_or_none()
            if kit is None:
                logger.warning("brand_kit_not_found", brand_kit_id=str(brand_kit_id))
                return None
            return BrandOverlays(
                brand_kit_id=kit.id,
                name=kit.name,
                video=Overlay.from_raw(kit.overlay_filter),
                thumbnail=Overlay.from_raw(kit.thumbnail_overlay_filter),
            )
        finally:
            db.close()

    def get_status(self, job_id: uuid.UUID) -> JobStatusView | None:
        db = self._session_factory()
        try:
            job = db.get(ExportJob, job_id)
            return JobStatusView.model_validate(job) if job else None
        finally:
            db.close()

    def requeue_failed(self, max_retries: int | None = None) -> int:
        """Put failed jobs that still have retries left back in the queue."""
        if max_retries is None:
            max_retries = settings.max_retries

        db = self._session_factory()
        try:
            result = db.execute(
                update(ExportJob)
                .where(ExportJob.status == ExportStatus.FAILED, ExportJob.retry_count < max_retries)
                .values(
                    status=ExportStatus.QUEUED,
                    retry_count=ExportJob.retry_count + 1,
                    progress=0,
                    error=None,
                    started_at=None,
                    completed_at=None,
                    worker_id=None,
                    updated_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("failed_jobs_requeued", count=result.rowcount, max_retries=max_retries)
        return result.rowcount


def _asset_row(job_id: uuid.UUID, asset: AssetRecord) -> ExportAsset:
    return ExportAsset(
        id=uuid.uuid4(),
        job_id=job_id,
        type=asset.type,
        variant=asset.variant,
        storage_path=asset.storage_path,
        size_bytes=asset.size_bytes,
        checksum=asset.checksum,
    )
