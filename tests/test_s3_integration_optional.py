import os
import uuid

import pytest

from vod_intake.storage import S3BlobUploader


RUN_AWS_INTEGRATION = os.getenv("RUN_AWS_INTEGRATION") == "1"
AWS_BUCKET = os.getenv("AWS_TEST_S3_BUCKET", "")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")


@pytest.mark.skipif(
    not RUN_AWS_INTEGRATION or not AWS_BUCKET,
    reason="Set RUN_AWS_INTEGRATION=1 and AWS_TEST_S3_BUCKET to run real AWS integration tests.",
)
def test_s3_real_multipart_roundtrip() -> None:
    key = f"it-{uuid.uuid4()}"
    uploader = S3BlobUploader(bucket=AWS_BUCKET, region=AWS_REGION)

    upload_id = uploader.create_multipart(key)
    part = uploader.upload_part(key, upload_id, b"hello-aws", 9, 1)
    uploader.complete_multipart(key, upload_id, [part])

    payload = uploader.client.get_object(Bucket=AWS_BUCKET, Key=key)["Body"].read()
    assert payload == b"hello-aws"

    uploader.client.delete_object(Bucket=AWS_BUCKET, Key=key)
