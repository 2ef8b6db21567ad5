import boto3
import structlog
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from export_worker.core.config import settings

logger = structlog.get_logger()


class DownloadError(Exception):
    """Raised when a source object cannot be fetched."""


class UploadError(Exception):
    """Raised when an export archive cannot be stored."""


def _normalize_endpoint(endpoint: str) -> str:
    if not endpoint.startswith(("http://", "https://")):
        endpoint = f"http://{endpoint}"
    return endpoint


class StorageService:
    """S3-compatible storage service for MinIO/S3."""

    def __init__(self, client=None, presign_client=None) -> None:
        endpoint = _normalize_endpoint(settings.minio_endpoint)

        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=settings.minio_access_key,
            aws_secret_access_key=settings.minio_secret_key,
            config=Config(signature_version="s3v4"),
        )

        # Client for presigned URLs (external access)
        if presign_client is None and client is None:
            external_endpoint = _normalize_endpoint(settings.minio_external_endpoint or endpoint)
            presign_client = boto3.client(
                "s3",
                endpoint_url=external_endpoint,
                aws_access_key_id=settings.minio_access_key,
                aws_secret_access_key=settings.minio_secret_key,
                config=Config(signature_version="s3v4"),
            )
        self.presign_client = presign_client or self.client

    def download_source(self, bucket: str, key: str) -> bytes:
        """Fetch a whole object into memory."""
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            data = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise DownloadError(f"Failed to download source video: {e}") from e

        logger.info("file_downloaded", bucket=bucket, key=key, size=len(data))
        return data

    def upload_zip(
        self, bucket: str, key: str, data: bytes, content_type: str = "application/zip"
    ) -> str:
        """Store bytes under ``key``, overwriting any previous object."""
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise UploadError(f"Failed to upload ZIP: {e}") from e

        logger.info("file_uploaded", bucket=bucket, key=key, size=len(data))
        return key

    def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        expires_in: int | None = None,
        filename: str | None = None,
    ) -> str:
        if expires_in is None:
            expires_in = settings.presigned_url_expiry_seconds

        params = {"Bucket": bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'

        return self.presign_client.generate_presigned_url(
            "get_object", Params=params, ExpiresIn=expires_in
        )
