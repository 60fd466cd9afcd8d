from __future__ import annotations
import io
from typing import Protocol
from minio import Minio
from minio.error import S3Error
import structlog
from proven.config import settings

log = structlog.get_logger()


class ImageStore(Protocol):
    def ref_for(self, key: str) -> str: ...
    def put(self, key: str, data: bytes, content_type: str) -> str: ...
    def get(self, ref: str) -> tuple[bytes, str]: ...


def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure


class MinioImageStore:
    """Proof images in an S3 bucket. Refs are `s3://bucket/key`; bytes are never inspected."""

    def __init__(self, bucket: str | None = None, client: Minio | None = None):
        self.bucket = bucket or settings.s3_bucket_uploads
        self._client = client
        self._bucket_ready = False

    @property
    def client(self) -> Minio:
        if self._client is None:
            host, secure = _parse_endpoint(settings.s3_endpoint)
            self._client = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
        return self._client

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
        except S3Error as e:
            # bucket creation may race with another worker
            if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise
        self._bucket_ready = True

    def ref_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self._ensure_bucket()
        self.client.put_object(self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)
        log.info("image_stored", bucket=self.bucket, key=key, size=len(data))
        return self.ref_for(key)

    def get(self, ref: str) -> tuple[bytes, str]:
        """Returns (data, content_type)."""
        bucket, _, key = ref.removeprefix("s3://").partition("/")
        try:
            response = self.client.get_object(bucket, key)
            try:
                data = response.read()
                content_type = response.headers.get("Content-Type", "application/octet-stream")
            finally:
                response.close()
                response.release_conn()
            return data, content_type
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise FileNotFoundError(f"Object not found: {ref}")
            raise


_default_store: MinioImageStore | None = None


def get_image_store() -> ImageStore:
    global _default_store
    if _default_store is None:
        _default_store = MinioImageStore()
    return _default_store
