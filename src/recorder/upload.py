"""
Upload Pipeline - durable storage of finished recordings in MinIO

Objects are keyed deterministically by job id (slideshow_<id>.mp4) in a
bucket with a public-read policy, so the returned URL can be shared as is.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from minio import Minio
from minio.error import MinioException, S3Error
from urllib3.exceptions import HTTPError as TransportError

from .config import StorageConfig, object_key
from .errors import UploadError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "video/mp4"

# S3 error responses, 5xx ServerError and connection failures (MaxRetryError)
STORE_ERRORS = (MinioException, TransportError)


@dataclass
class StoredRecording:
    """A recording found in the bucket"""

    recording_id: str
    filename: str
    file_size: int
    last_modified: Optional[datetime]
    download_url: str
    etag: Optional[str] = None

    @property
    def file_size_mb(self) -> float:
        return round(self.file_size / 1024 / 1024, 2)

    def to_dict(self) -> dict:
        return {
            "recordingId": self.recording_id,
            "filename": self.filename,
            "fileSize": self.file_size,
            "fileSizeMB": self.file_size_mb,
            "lastModified": self.last_modified.isoformat() if self.last_modified else None,
            "downloadUrl": self.download_url,
            "etag": self.etag,
        }


def public_read_policy(bucket: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket}/*"],
            }
        ],
    })


class UploadPipeline:
    """
    Pushes recordings to the object store.

    Usage:
        uploader = UploadPipeline(StorageConfig())
        await uploader.ensure_bucket()
        url = await uploader.publish(Path("temp-recordings/slideshow_abc.mp4"), "abc")
    """

    def __init__(self, config: Optional[StorageConfig] = None, client: Optional[Minio] = None):
        self.config = config if config is not None else StorageConfig()
        self.client = client if client is not None else Minio(
            endpoint=self.config.host,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key,
            secure=self.config.use_ssl,
        )

    @property
    def bucket(self) -> str:
        return self.config.bucket

    def public_url(self, key: str) -> str:
        return f"{self.config.public_base_url}/{key}"

    async def ensure_bucket(self) -> None:
        """Create the bucket if needed and make its objects publicly readable"""
        logger.info("Initializing MinIO connection...")
        exists = await asyncio.to_thread(self.client.bucket_exists, bucket_name=self.bucket)
        if not exists:
            await asyncio.to_thread(
                self.client.make_bucket, bucket_name=self.bucket, location=self.config.region
            )
            logger.info(f"Created MinIO bucket: {self.bucket}")
        else:
            logger.info(f"MinIO bucket exists: {self.bucket}")

        await asyncio.to_thread(
            self.client.set_bucket_policy,
            bucket_name=self.bucket,
            policy=public_read_policy(self.bucket),
        )
        logger.info("MinIO bucket policy set for public read access")

    async def is_reachable(self) -> bool:
        try:
            await asyncio.to_thread(self.client.bucket_exists, bucket_name=self.bucket)
            return True
        except Exception as e:
            logger.warning(f"MinIO not reachable: {e}")
            return False

    async def publish(self, local_path: Path, job_id: str) -> str:
        """
        Upload a finished recording and delete the local file.

        Returns:
            Public URL of the stored object

        Raises:
            UploadError: the file is missing/empty or the store rejected it
        """
        local_path = Path(local_path)
        try:
            size = local_path.stat().st_size
        except FileNotFoundError:
            raise UploadError(f"Recording file not found: {local_path}")
        if size == 0:
            raise UploadError(f"Recording file is empty: {local_path}")

        key = object_key(job_id)
        logger.info(f"Uploading to MinIO: {key}")
        metadata = {
            "X-Recording-ID": job_id,
            "X-Recording-Size": str(size),
            "X-Upload-Time": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await asyncio.to_thread(
                self.client.fput_object,
                bucket_name=self.bucket,
                object_name=key,
                file_path=str(local_path),
                content_type=CONTENT_TYPE,
                metadata=metadata,
            )
        except (*STORE_ERRORS, OSError, ValueError) as e:
            raise UploadError(f"MinIO upload failed: {e}") from e

        url = self.public_url(key)
        logger.info(f"Uploaded to MinIO: {url}")
        self._remove_local(local_path)
        return url

    async def list_recordings(self) -> list[StoredRecording]:
        """All stored recordings, newest first"""

        def _list():
            return list(self.client.list_objects(bucket_name=self.bucket, recursive=True))

        try:
            objects = await asyncio.to_thread(_list)
        except STORE_ERRORS as e:
            raise UploadError(f"MinIO listing failed: {e}") from e

        recordings = []
        for obj in objects:
            name = obj.object_name
            if not name.endswith(".mp4"):
                continue
            recordings.append(StoredRecording(
                recording_id=name.removeprefix("slideshow_").removesuffix(".mp4"),
                filename=name,
                file_size=obj.size or 0,
                last_modified=obj.last_modified,
                download_url=self.public_url(name),
                etag=obj.etag,
            ))

        oldest = datetime.min.replace(tzinfo=timezone.utc)
        recordings.sort(key=lambda r: r.last_modified or oldest, reverse=True)
        return recordings

    async def delete_recording(self, job_id: str) -> bool:
        """
        Remove a stored recording. Returns False if it does not exist.

        Raises:
            UploadError: the store could not be reached or refused the request
        """
        key = object_key(job_id)
        try:
            await asyncio.to_thread(self.client.stat_object, bucket_name=self.bucket, object_name=key)
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject", "NoSuchBucket"):
                return False
            raise UploadError(f"MinIO delete failed: {e}") from e
        except STORE_ERRORS as e:
            raise UploadError(f"MinIO delete failed: {e}") from e
        try:
            await asyncio.to_thread(self.client.remove_object, bucket_name=self.bucket, object_name=key)
        except STORE_ERRORS as e:
            raise UploadError(f"MinIO delete failed: {e}") from e
        logger.info(f"Deleted from MinIO: {key}")
        return True

    @staticmethod
    def _remove_local(path: Path) -> None:
        try:
            path.unlink()
            logger.info("Cleaned up temporary file")
        except OSError as e:
            logger.warning(f"Failed to cleanup temp file {path}: {e}")
