import sys
import types

import pytest
from botocore.exceptions import ClientError

from vod_intake.entities import Part
from vod_intake.errors import InfrastructureError
from vod_intake.storage import S3BlobUploader


class _FakeS3Client:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def create_multipart_upload(self, **kwargs):
        self.calls.append(("create_multipart_upload", kwargs))
        return {"UploadId": "upload-xyz"}

    def upload_part(self, **kwargs):
        self.calls.append(("upload_part", kwargs))
        return {"ETag": f'"etag-{kwargs["PartNumber"]}"'}

    def put_object(self, **kwargs):
        self.calls.append(("put_object", kwargs))
        return {}

    def complete_multipart_upload(self, **kwargs):
        self.calls.append(("complete_multipart_upload", kwargs))
        return {}


def _install_fake_boto3(monkeypatch, client) -> list[dict]:
    created: list[dict] = []

    def _client(service_name, **kwargs):
        created.append({"service_name": service_name, **kwargs})
        return client

    monkeypatch.setitem(sys.modules, "boto3", types.SimpleNamespace(client=_client))
    return created


def test_s3_multipart_flow(monkeypatch) -> None:
    fake_client = _FakeS3Client()
    created = _install_fake_boto3(monkeypatch, fake_client)

    uploader = S3BlobUploader(bucket="bucket-1", region="us-east-1")
    upload_id = uploader.create_multipart("video-1")
    second = uploader.upload_part("video-1", upload_id, b"efgh", 4, 2)
    first = uploader.upload_part("video-1", upload_id, b"abcd", 4, 1)
    uploader.complete_multipart("video-1", upload_id, [second, first])

    assert upload_id == "upload-xyz"
    assert first == Part(part_number=1, etag='"etag-1"', size=4)
    assert [name for name, _ in fake_client.calls] == [
        "create_multipart_upload",
        "upload_part",
        "upload_part",
        "complete_multipart_upload",
    ]
    assert all(call["Bucket"] == "bucket-1" and call["Key"] == "video-1" for _, call in fake_client.calls)
    assert fake_client.calls[1][1]["PartNumber"] == 2
    assert fake_client.calls[1][1]["ContentLength"] == 4
    assert fake_client.calls[3][1]["MultipartUpload"] == {
        "Parts": [{"PartNumber": 1, "ETag": '"etag-1"'}, {"PartNumber": 2, "ETag": '"etag-2"'}]
    }
    assert created[0]["service_name"] == "s3"
    assert created[0]["config"].connect_timeout == 5.0


def test_s3_simple_upload_puts_whole_object(monkeypatch) -> None:
    fake_client = _FakeS3Client()
    _install_fake_boto3(monkeypatch, fake_client)

    S3BlobUploader(bucket="bucket-1", region="us-east-1").simple_upload("video-2", b"payload")

    assert fake_client.calls == [("put_object", {"Bucket": "bucket-1", "Key": "video-2", "Body": b"payload"})]


def test_s3_client_errors_become_infrastructure_errors(monkeypatch) -> None:
    class _FailingClient(_FakeS3Client):
        def upload_part(self, **kwargs):
            raise ClientError({"Error": {"Code": "NoSuchUpload", "Message": "gone"}}, "UploadPart")

    _install_fake_boto3(monkeypatch, _FailingClient())
    uploader = S3BlobUploader(bucket="bucket-1", region="us-east-1")

    with pytest.raises(InfrastructureError) as exc_info:
        uploader.upload_part("video-3", "upload-xyz", b"abcd", 4, 1)

    assert exc_info.value.operation == "upload_part"
    assert exc_info.value.video_id == "video-3"
    assert isinstance(exc_info.value.__cause__, ClientError)


def test_s3_requires_bucket() -> None:
    with pytest.raises(ValueError):
        S3BlobUploader(bucket="", region="us-east-1")


class _CompletedHandleClient(_FakeS3Client):
    def __init__(self, object_exists: bool) -> None:
        super().__init__()
        self.object_exists = object_exists

    def complete_multipart_upload(self, **kwargs):
        raise ClientError({"Error": {"Code": "NoSuchUpload", "Message": "gone"}}, "CompleteMultipartUpload")

    def head_object(self, **kwargs):
        self.calls.append(("head_object", kwargs))
        if not self.object_exists:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": 8}


def test_s3_completing_an_already_completed_handle_succeeds(monkeypatch) -> None:
    client = _CompletedHandleClient(object_exists=True)
    _install_fake_boto3(monkeypatch, client)

    uploader = S3BlobUploader(bucket="bucket-1", region="us-east-1")
    uploader.complete_multipart("video-4", "upload-xyz", [Part(part_number=1, etag='"etag-1"', size=8)])

    assert client.calls == [("head_object", {"Bucket": "bucket-1", "Key": "video-4"})]


def test_s3_missing_handle_without_object_is_an_error(monkeypatch) -> None:
    _install_fake_boto3(monkeypatch, _CompletedHandleClient(object_exists=False))

    uploader = S3BlobUploader(bucket="bucket-1", region="us-east-1")
    with pytest.raises(InfrastructureError) as exc_info:
        uploader.complete_multipart("video-5", "upload-xyz", [Part(part_number=1, etag='"etag-1"', size=8)])

    assert exc_info.value.operation == "complete_multipart"
