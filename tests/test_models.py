"""Tests for s3uploader models."""
import pytest
from botocore.config import Config

from s3uploader.exceptions import ConfigError
from s3uploader.models import (
    AdapterConfig,
    UploadRequest,
    UploadResult,
    strip_etag,
)


class TestUploadResult:
    def test_strip_etag(self):
        assert strip_etag('"abc123"') == "abc123"
        assert strip_etag("abc123") == "abc123"
        assert strip_etag(None) == ""

    def test_from_completion(self):
        completion = {"ETag": '"abc123"', "VersionId": "v7", "ContentLength": 11}
        result = UploadResult.from_completion(
            key="uploads/a.txt",
            content_type="text/plain",
            digest="d41d8cd98f00b204e9800998ecf8427e",
            completion=completion,
            size=11,
        )

        assert result.etag == "abc123"
        assert result.raw["ETag"] == "abc123"
        assert result.raw["ContentLength"] == 11
        assert result.version_id == "v7"
        assert result.algorithm == "md5"
        # Caller's payload is left untouched
        assert completion["ETag"] == '"abc123"'

    def test_result_is_frozen(self):
        result = UploadResult(key="k", content_type="text/plain", digest="d", etag="e")
        with pytest.raises(AttributeError):
            result.key = "other"


class TestUploadRequest:
    def test_name_prefers_path(self):
        request = UploadRequest(source=None, path="/tmp/x/report.csv", descriptor="other.csv")
        assert request.name == "report.csv"

    def test_name_from_descriptor(self):
        assert UploadRequest(source=None, descriptor="photos/cat.jpg").name == "cat.jpg"
        assert UploadRequest(source=None).name is None

    @pytest.mark.asyncio
    async def test_from_path(self, tmp_path):
        file_path = tmp_path / "report.csv"
        file_path.write_bytes(b"a,b\n1,2\n")

        request = UploadRequest.from_path(file_path, chunk_size=3)

        assert request.path == str(file_path)
        assert request.size == 8
        chunks = [chunk async for chunk in request.source]
        assert chunks == [b"a,b", b"\n1,", b"2\n"]


class TestAdapterConfig:
    def test_from_env(self):
        environ = {
            "S3_BUCKET": "media",
            "S3_ACCESS_KEY": "AKIA",
            "S3_SECRET_KEY": "secret",
            "S3_REGION": "eu-west-1",
            "S3_DIRECTORY_PREFIX": "uploads",
            "S3_DIGEST_ALGORITHM": "sha256",
        }
        config = AdapterConfig.from_env(environ)

        assert config.bucket == "media"
        assert config.region == "eu-west-1"
        assert config.directory_prefix == "uploads"
        assert config.digest_algorithm == "sha256"
        assert config.endpoint_url is None

    def test_from_env_overrides(self):
        config = AdapterConfig.from_env({"S3_BUCKET": "media"}, bucket="other", region=None)
        assert config.bucket == "other"
        assert config.region is None
        assert config.digest_algorithm == "md5"

    def test_merged(self):
        base = AdapterConfig(
            bucket="media",
            request_overrides={"ACL": "private", "CacheControl": "no-cache"},
            client_options={"max_concurrency": 4},
        )
        merged = base.merged(
            bucket="other",
            request_overrides={"ACL": "public-read"},
            client_options={"multipart_chunksize": 8 * 1024 * 1024},
        )

        assert merged.bucket == "other"
        assert merged.request_overrides == {"ACL": "public-read", "CacheControl": "no-cache"}
        assert merged.client_options == {"max_concurrency": 4, "multipart_chunksize": 8 * 1024 * 1024}
        assert base.request_overrides["ACL"] == "private"
        assert base.merged() is base

    def test_validate(self):
        with pytest.raises(ConfigError, match="bucket"):
            AdapterConfig().validate()
        with pytest.raises(ConfigError, match="digest"):
            AdapterConfig(bucket="media", digest_algorithm="nope").validate()
        assert AdapterConfig(bucket="media", digest_algorithm="blake3").validate().bucket == "media"

    def test_service_params(self):
        config = AdapterConfig(
            bucket="media",
            access_key="AKIA",
            secret_key="secret",
            region="us-east-1",
            endpoint_url="http://localhost:9000",
        )
        assert config.service_params() == {
            "aws_access_key_id": "AKIA",
            "aws_secret_access_key": "secret",
            "region_name": "us-east-1",
            "endpoint_url": "http://localhost:9000",
        }
        assert AdapterConfig().service_params() == {}

    def test_service_overrides(self):
        retries = Config(retries={"max_attempts": 10, "mode": "adaptive"})
        config = AdapterConfig(
            bucket="media",
            region="us-east-1",
            service_overrides={"config": retries, "region_name": "eu-central-1"},
        )

        assert config.service_params() == {"region_name": "eu-central-1", "config": retries}
        assert config.merged(bucket="other").service_params()["config"] is retries

    def test_request_params(self):
        config = AdapterConfig(bucket="media", request_overrides={"ACL": "private"})
        assert config.request_params() == {"ACL": "private", "Bucket": "media"}
