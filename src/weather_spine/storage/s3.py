"""S3-compatible artifact store."""

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from weather_spine.errors import NotFound
from weather_spine.storage.base import ArtifactStore

logger = structlog.get_logger()

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3Storage(ArtifactStore):
    """
    S3-compatible object storage backend.

    Works with AWS S3, MinIO, LocalStack, and other S3-compatible services.
    ``put_object`` replaces existing keys, which is what makes redelivered
    units overwrite rather than duplicate.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.region = region

        if client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": region,
                "config": Config(
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "standard"},
                    connect_timeout=10,
                    read_timeout=30,
                ),
            }
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url
            if access_key and secret_key:
                client_kwargs["aws_access_key_id"] = access_key
                client_kwargs["aws_secret_access_key"] = secret_key
            client = boto3.client(**client_kwargs)

        self.client = client

        logger.info(
            "s3_storage_initialized",
            bucket=bucket,
            endpoint=endpoint_url,
            region=region,
        )

    def put(self, path: str, content: bytes, content_type: str | None = None) -> None:
        key = path.lstrip("/")

        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type

        self.client.put_object(Bucket=self.bucket, Key=key, Body=content, **extra_args)

        logger.info("s3_artifact_written", bucket=self.bucket, key=key, size=len(content))

    def get(self, path: str) -> bytes:
        key = path.lstrip("/")
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"Artifact not found: {path}", path=path, cause=e)
            raise
        return response["Body"].read()
