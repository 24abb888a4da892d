"""Tests for S3 client construction and path parsing."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError as ConfigError

from s3find.core.exceptions import ValidationError
from s3find.objectstorage.clients import (
    S3ClientConfig,
    S3ClientManager,
    S3Path,
    parse_s3_path,
    validate_bucket_name,
)


class TestParseS3Path:
    """Test s3:// path parsing."""

    def test_bucket_only(self):
        """Test a bare bucket walks from the root."""
        assert parse_s3_path("s3://bucket") == S3Path("bucket", "")
        assert parse_s3_path("s3://bucket/") == S3Path("bucket", "")

    def test_trailing_slashes_stripped(self):
        """Test trailing slashes do not change the prefix."""
        assert parse_s3_path("s3://testbucket/path///") == S3Path("testbucket", "path")
        assert parse_s3_path("s3://testbucket/a/b") == S3Path("testbucket", "a/b")

    @pytest.mark.parametrize(
        "path", ["bucket/path", "s3://", "s3:/bucket", "http://bucket/key", "s3://AB/key"]
    )
    def test_invalid(self, path):
        """Test malformed paths and bad bucket names."""
        with pytest.raises(ValidationError):
            parse_s3_path(path)

    def test_url(self):
        """Test object urls."""
        assert S3Path("bucket").url("a/b") == "s3://bucket/a/b"


class TestValidateBucketName:
    """Test bucket naming rules."""

    @pytest.mark.parametrize(
        "name", ["abc", "my-bucket", "my.bucket.name", "a" * 63, "bucket-123"]
    )
    def test_valid(self, name):
        """Test valid names."""
        assert validate_bucket_name(name)

    @pytest.mark.parametrize(
        "name",
        [
            "ab",
            "a" * 64,
            "UPPER",
            "-start",
            "end-",
            "two..dots",
            "dot.-dash",
            "192.168.1.1",
            "xn--bucket",
            "sthree-bucket",
            "bucket-s3alias",
            "bucket--ol-s3",
            "under_score",
        ],
    )
    def test_invalid(self, name):
        """Test names S3 would refuse."""
        assert not validate_bucket_name(name)


class TestS3ClientManager:
    """Test client construction."""

    def test_client_created_lazily(self):
        """Test no client exists before first use."""
        manager = S3ClientManager(S3ClientConfig(region_name="us-east-1"))
        assert manager._client is None

    def test_explicit_credentials(self):
        """Test explicit keys are handed to boto3."""
        config = S3ClientConfig(
            access_key_id="key",
            secret_access_key="secret",
            session_token="token",
            region_name="eu-west-1",
            endpoint_url="http://localhost:9000",
        )

        with patch("s3find.objectstorage.clients.s3_client.boto3.Session") as session:
            S3ClientManager(config).client

        session.assert_called_once_with(
            aws_access_key_id="key",
            aws_secret_access_key="secret",
            aws_session_token="token",
        )
        client = session.return_value.client
        assert client.call_args.args == ("s3",)
        assert client.call_args.kwargs["region_name"] == "eu-west-1"
        assert client.call_args.kwargs["endpoint_url"] == "http://localhost:9000"

    def test_default_chain(self):
        """Test no credentials means a plain session."""
        with patch("s3find.objectstorage.clients.s3_client.boto3.Session") as session:
            S3ClientManager(S3ClientConfig()).client

        session.assert_called_once_with()

    def test_profile(self):
        """Test a profile builds its own session."""
        config = S3ClientConfig(aws_profile="research")

        with patch("s3find.objectstorage.clients.s3_client.boto3.Session") as session:
            S3ClientManager(config).client

        session.assert_called_once_with(profile_name="research")
        session.return_value.client.assert_called_once()

    def test_path_style_and_pool_size(self):
        """Test addressing style and connection pool reach the botocore config."""
        config = S3ClientConfig(
            region_name="us-east-1", force_path_style=True, max_pool_connections=8
        )

        client = S3ClientManager(config).client

        assert client.meta.config.s3["addressing_style"] == "path"
        assert client.meta.config.max_pool_connections == 8
        assert client.meta.config.retries["mode"] == "standard"

    def test_region_name(self):
        """Test the region comes from the client."""
        manager = S3ClientManager(S3ClientConfig(region_name="ap-southeast-2"))
        assert manager.region_name == "ap-southeast-2"

    def test_unknown_fields_rejected(self):
        """Test the config forbids extra fields."""
        with pytest.raises(ConfigError):
            S3ClientConfig(bucket="nope")
