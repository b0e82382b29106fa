import hashlib
import shutil
import uuid
from pathlib import Path

from vod_intake.config import settings
from vod_intake.entities import Part
from vod_intake.errors import InfrastructureError


class BlobUploader:
    """Object-store primitives used by the upload coordinator.

    ``key`` is the object key of the assembled video (the video id) and
    ``upload_id`` is the multipart handle returned by :meth:`create_multipart`.
    Implementations raise :class:`InfrastructureError` on storage failures.
    Completing a handle that was already completed for the same key succeeds
    without rewriting the object.
    """

    def create_multipart(self, key: str) -> str:
        raise NotImplementedError

    def upload_part(self, key: str, upload_id: str, data: bytes, length: int, part_number: int) -> Part:
        raise NotImplementedError

    def complete_multipart(self, key: str, upload_id: str, parts: list[Part]) -> None:
        raise NotImplementedError

    def simple_upload(self, key: str, data: bytes) -> None:
        raise NotImplementedError


class LocalBlobUploader(BlobUploader):
    def __init__(self, root: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def object_path(self, key: str) -> Path:
        return self.root / "videos" / key

    def _staging_dir(self, upload_id: str) -> Path:
        return self.root / ".multipart" / upload_id

    def create_multipart(self, key: str) -> str:
        upload_id = uuid.uuid4().hex
        self._staging_dir(upload_id).mkdir(parents=True, exist_ok=True)
        return upload_id

    def upload_part(self, key: str, upload_id: str, data: bytes, length: int, part_number: int) -> Part:
        staging = self._staging_dir(upload_id)
        if not staging.is_dir():
            raise InfrastructureError("upload_part", f"unknown multipart upload {upload_id}", video_id=key)
        try:
            (staging / f"part_{part_number:05d}").write_bytes(data)
        except OSError as exc:
            raise InfrastructureError("upload_part", str(exc), video_id=key) from exc
        return Part(part_number=part_number, etag=f'"{hashlib.md5(data).hexdigest()}"', size=length)

    def complete_multipart(self, key: str, upload_id: str, parts: list[Part]) -> None:
        staging = self._staging_dir(upload_id)
        target = self.object_path(key)
        if not staging.is_dir() and target.exists():
            return
        pending = target.with_name(f"{target.name}.{upload_id}.pending")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with pending.open("wb") as out:
                for part in sorted(parts, key=lambda p: p.part_number):
                    data = (staging / f"part_{part.part_number:05d}").read_bytes()
                    if f'"{hashlib.md5(data).hexdigest()}"' != part.etag:
                        raise InfrastructureError(
                            "complete_multipart", f"etag mismatch for part {part.part_number}", video_id=key
                        )
                    out.write(data)
            pending.replace(target)
        except OSError as exc:
            raise InfrastructureError("complete_multipart", str(exc), video_id=key) from exc
        finally:
            pending.unlink(missing_ok=True)
        shutil.rmtree(staging, ignore_errors=True)

    def simple_upload(self, key: str, data: bytes) -> None:
        target = self.object_path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise InfrastructureError("simple_upload", str(exc), video_id=key) from exc


class S3BlobUploader(BlobUploader):
    def __init__(
        self,
        bucket: str,
        region: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket must be set for s3-compatible backends")
        import boto3
        from botocore.config import Config

        self.bucket = bucket
        client_kwargs = {
            "region_name": region,
            "config": Config(
                connect_timeout=settings.blob_connect_timeout_seconds,
                read_timeout=settings.blob_read_timeout_seconds,
                retries={"max_attempts": settings.blob_max_attempts, "mode": "standard"},
            ),
        }
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        if access_key_id and secret_access_key:
            client_kwargs["aws_access_key_id"] = access_key_id
            client_kwargs["aws_secret_access_key"] = secret_access_key
        self.client = boto3.client("s3", **client_kwargs)

    def _call(self, operation: str, key: str, fn, **kwargs) -> dict:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return fn(Bucket=self.bucket, Key=key, **kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureError(operation, str(exc), video_id=key) from exc

    def create_multipart(self, key: str) -> str:
        result = self._call("create_multipart", key, self.client.create_multipart_upload)
        return result["UploadId"]

    def upload_part(self, key: str, upload_id: str, data: bytes, length: int, part_number: int) -> Part:
        result = self._call(
            "upload_part",
            key,
            self.client.upload_part,
            PartNumber=part_number,
            UploadId=upload_id,
            Body=data,
            ContentLength=length,
        )
        return Part(part_number=part_number, etag=result["ETag"], size=length)

    def complete_multipart(self, key: str, upload_id: str, parts: list[Part]) -> None:
        ordered = sorted(parts, key=lambda p: p.part_number)
        try:
            self._call(
                "complete_multipart",
                key,
                self.client.complete_multipart_upload,
                UploadId=upload_id,
                MultipartUpload={"Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in ordered]},
            )
        except InfrastructureError as exc:
            # A handle that was already completed is gone, but its object is in place.
            if _error_code(exc.__cause__) != "NoSuchUpload" or not self._object_exists(key):
                raise

    def _object_exists(self, key: str) -> bool:
        try:
            self._call("head_object", key, self.client.head_object)
        except InfrastructureError:
            return False
        return True

    def simple_upload(self, key: str, data: bytes) -> None:
        self._call("simple_upload", key, self.client.put_object, Body=data)


def _error_code(exc: BaseException | None) -> str | None:
    response = getattr(exc, "response", None) or {}
    return response.get("Error", {}).get("Code")


def build_uploader() -> BlobUploader:
    backend = settings.storage_backend.lower()
    if backend == "local":
        return LocalBlobUploader(settings.storage_root)
    if backend == "s3":
        return S3BlobUploader(settings.s3_bucket, settings.aws_region)
    if backend == "r2":
        if not settings.r2_bucket:
            raise ValueError("r2_bucket must be set when storage_backend=r2")
        endpoint_url = settings.r2_endpoint_url
        if not endpoint_url:
            if not settings.r2_account_id:
                raise ValueError("set r2_endpoint_url or r2_account_id when storage_backend=r2")
            endpoint_url = f"https://{settings.r2_account_id}.r2.cloudflarestorage.com"

        return S3BlobUploader(
            bucket=settings.r2_bucket,
            region="auto",
            endpoint_url=endpoint_url,
            access_key_id=settings.r2_access_key_id or None,
            secret_access_key=settings.r2_secret_access_key or None,
        )
    raise ValueError(f"unsupported storage backend: {settings.storage_backend}")
