from .archive import create_zip, file_checksum
from .metadata import write_metadata_files
from .notifier import EventPublisher
from .queue import JobQueue
from .storage import DownloadError, StorageService, UploadError
from .transcoder import FFmpegError, RenditionTranscoder

__all__ = [
    "create_zip",
    "file_checksum",
    "write_metadata_files",
    "EventPublisher",
    "JobQueue",
    "DownloadError",
    "StorageService",
    "UploadError",
    "FFmpegError",
    "RenditionTranscoder",
]
