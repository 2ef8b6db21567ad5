import math
import shutil
import tempfile
import time
from pathlib import Path

import structlog

from export_worker.core.config import settings
from export_worker.models import AssetType, ExportStatus
from export_worker.schemas.export import AssetRecord, ClaimedJob
from export_worker.services import (
    EventPublisher,
    JobQueue,
    RenditionTranscoder,
    StorageService,
    create_zip,
    file_checksum,
    write_metadata_files,
)
from export_worker.services.notifier import EXPORT_FAILED, EXPORT_READY

logger = structlog.get_logger()

# Reported while renditions are produced; packaging and upload own the rest.
MAX_WORK_PROGRESS = 95
PACKAGING_PROGRESS = 97
UPLOADED_PROGRESS = 98


class JobCanceled(Exception):
    """The job left its active status while it was being processed."""


def progress_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(MAX_WORK_PROGRESS, math.floor(100 * completed / total + 0.5))


def output_key(job: ClaimedJob) -> str:
    return f"{job.user_id}/{job.id}/export.zip"


class ProgressTracker:
    """Counts finished work units and writes the derived percentage."""

    def __init__(self, queue: JobQueue, job_id, total_units: int) -> None:
        self.queue = queue
        self.job_id = job_id
        self.total_units = total_units
        self.completed = 0

    def advance(self, units: int = 1) -> None:
        self.completed += units
        self.write(progress_percent(self.completed, self.total_units))

    def write(self, percent: int, status: ExportStatus | None = None) -> None:
        try:
            applied = self.queue.update_progress(self.job_id, percent, status)
        except Exception as e:
            logger.error("progress_update_failed", job_id=str(self.job_id), percent=percent, error=str(e))
            return

        if not applied:
            raise JobCanceled(f"Job {self.job_id} is no longer active")


class ExportProcessor:
    """Runs one claimed export job from source download to ``ready``."""

    def __init__(
        self,
        queue: JobQueue,
        storage: StorageService | None = None,
        transcoder: RenditionTranscoder | None = None,
        publisher: EventPublisher | None = None,
        scratch_root: str | None = None,
        exports_bucket: str | None = None,
    ) -> None:
        self.queue = queue
        self.storage = storage or StorageService()
        self.transcoder = transcoder or RenditionTranscoder()
        self.publisher = publisher or EventPublisher()
        self.scratch_root = scratch_root or settings.scratch_dir
        self.exports_bucket = exports_bucket or settings.exports_bucket

    def process(self, job: ClaimedJob) -> ExportStatus:
        """Process ``job`` and return the status it ended in. Never raises."""
        job_id = str(job.id)
        start_time = time.time()
        scratch: Path | None = None

        try:
            scratch = Path(tempfile.mkdtemp(prefix=f"export-{job.id}-", dir=self.scratch_root))
            logger.info("export_started", job_id=job_id, formats=len(job.formats), scratch=str(scratch))
            ready = self._run(job, scratch)

        except JobCanceled:
            logger.info("export_canceled", job_id=job_id)
            return ExportStatus.CANCELED

        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error("export_failed", job_id=job_id, error=message, error_type=e.__class__.__name__)
            try:
                failed = self.queue.mark_failed(job.id, message)
            except Exception as db_error:
                logger.error("mark_failed_error", job_id=job_id, error=str(db_error))
                return ExportStatus.FAILED

            if not failed:
                return ExportStatus.CANCELED
            self.publisher.publish(job_id, job.user_id, EXPORT_FAILED, error=message)
            return ExportStatus.FAILED

        finally:
            if scratch is not None:
                self.cleanup(scratch)

        if not ready:
            logger.info("export_canceled", job_id=job_id)
            return ExportStatus.CANCELED

        processing_time = int(time.time() - start_time)
        logger.info("export_completed", job_id=job_id, processing_time=processing_time)
        self.publisher.publish(job_id, job.user_id, EXPORT_READY, zip_path=output_key(job))
        return ExportStatus.READY

    def _run(self, job: ClaimedJob, scratch: Path) -> bool:
        options = job.options
        out_dir = scratch / "out"
        out_dir.mkdir(parents=True, exist_ok=True)

        # metadata batch + one unit per rendition and thumbnail + packaging
        units_per_format = 2 if options.generate_thumbnails else 1
        tracker = ProgressTracker(self.queue, job.id, len(job.formats) * units_per_format + 2)

        brand = self.queue.get_brand_overlays(job.brand_kit_id) if job.brand_kit_id else None
        video_overlay = brand.video if brand else None
        thumbnail_overlay = brand.thumbnail if brand else None
        logger.info("brand_kit_resolved", job_id=str(job.id), brand_kit=brand.name if brand else None)

        bucket = job.storage_bucket or settings.source_bucket
        source = scratch / f"source{Path(job.source_video_path).suffix or '.mp4'}"
        source.write_bytes(self.storage.download_source(bucket, job.source_video_path))

        produced: list[tuple[AssetType, str, Path]] = []
        for path in write_metadata_files(options.metadata_overrides, out_dir / "metadata"):
            produced.append((AssetType.METADATA, path.name, path))
        tracker.advance()

        timecode = options.thumbnail_timecode or settings.default_thumbnail_timecode
        for fmt in job.formats:
            video = self.transcoder.transcode(source, out_dir / fmt.dirname / "video.mp4", fmt, video_overlay)
            produced.append((AssetType.VIDEO, fmt.variant, video))
            tracker.advance()

            if options.generate_thumbnails:
                thumb = self.transcoder.extract_thumbnail(
                    video,
                    out_dir / "thumbnails" / f"thumb_{fmt.dirname}.png",
                    timecode,
                    thumbnail_overlay,
                )
                produced.append((AssetType.THUMBNAIL, f"{fmt.ratio}-thumb", thumb))
                tracker.advance()

        tracker.write(PACKAGING_PROGRESS, ExportStatus.PACKAGING)
        zip_path = scratch / "export.zip"
        zip_size = create_zip(out_dir, zip_path)

        tracker.write(UPLOADED_PROGRESS, ExportStatus.UPLOADED)
        zip_key = output_key(job)
        self.storage.upload_zip(self.exports_bucket, zip_key, zip_path.read_bytes())

        assets = [
            AssetRecord(
                type=kind,
                variant=variant,
                size_bytes=path.stat().st_size,
                checksum=file_checksum(path),
            )
            for kind, variant, path in produced
        ]
        return self.queue.mark_ready(job.id, zip_key, zip_size, assets)

    def cleanup(self, directory: str | Path) -> None:
        """Remove directory and contents."""
        path = Path(directory)
        try:
            if path.exists():
                shutil.rmtree(path)
        except OSError as e:
            logger.error("scratch_cleanup_failed", path=str(path), error=str(e))
