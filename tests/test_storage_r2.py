import sys
import types

import pytest

from vod_intake.storage import LocalBlobUploader, S3BlobUploader, build_uploader, settings


def test_build_uploader_r2_uses_cloudflare_endpoint(monkeypatch) -> None:
    calls: list[dict] = []

    class _FakeClient:
        pass

    def _fake_boto3_client(service_name, **kwargs):
        calls.append({"service_name": service_name, **kwargs})
        return _FakeClient()

    monkeypatch.setitem(sys.modules, "boto3", types.SimpleNamespace(client=_fake_boto3_client))
    monkeypatch.setattr(settings, "storage_backend", "r2")
    monkeypatch.setattr(settings, "r2_bucket", "r2-bucket")
    monkeypatch.setattr(settings, "r2_account_id", "acct123")
    monkeypatch.setattr(settings, "r2_endpoint_url", "")
    monkeypatch.setattr(settings, "r2_access_key_id", "ak")
    monkeypatch.setattr(settings, "r2_secret_access_key", "sk")

    uploader = build_uploader()

    assert isinstance(uploader, S3BlobUploader)
    assert uploader.bucket == "r2-bucket"
    assert calls[0]["service_name"] == "s3"
    assert calls[0]["region_name"] == "auto"
    assert calls[0]["endpoint_url"] == "https://acct123.r2.cloudflarestorage.com"
    assert calls[0]["aws_access_key_id"] == "ak"
    assert calls[0]["aws_secret_access_key"] == "sk"


def test_build_uploader_r2_requires_endpoint_or_account(monkeypatch) -> None:
    monkeypatch.setattr(settings, "storage_backend", "r2")
    monkeypatch.setattr(settings, "r2_bucket", "r2-bucket")
    monkeypatch.setattr(settings, "r2_account_id", "")
    monkeypatch.setattr(settings, "r2_endpoint_url", "")

    with pytest.raises(ValueError):
        build_uploader()


def test_build_uploader_local_and_unknown_backend(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(settings, "storage_backend", "local")
    monkeypatch.setattr(settings, "storage_root", str(tmp_path))
    assert isinstance(build_uploader(), LocalBlobUploader)

    monkeypatch.setattr(settings, "storage_backend", "ftp")
    with pytest.raises(ValueError):
        build_uploader()
