import logging
import os
from typing import Optional, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import UploadError

logger = logging.getLogger("agify-backend")


class BlobStore(Protocol):
    def upload(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = "3600",
        upsert: bool = True,
    ) -> str: ...

    def public_url(self, key: str) -> str: ...


class S3BlobStore:
    """S3 / R2 / Supabase-storage (S3 protocol) bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint: str,
        access_key: str,
        secret_key: str,
        region: str = "auto",
        public_base_url: Optional[str] = None,
    ):
        self.bucket = bucket
        self.public_base_url = (public_base_url or f"{endpoint.rstrip('/')}/{bucket}").rstrip("/")
        self._s3 = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    def upload(self, key, data, content_type, cache_control="3600", upsert=True) -> str:
        if not upsert and self._exists(key):
            raise UploadError(f"Object already exists: {key}")
        try:
            self._s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=f"max-age={cache_control}",
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning("S3 put_object failed for %s: %s", key, e)
            raise UploadError() from e
        return f"s3://{self.bucket}/{key}"

    def _exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError:
            return False

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


class LocalBlobStore:
    """Directory-backed store for development; files are served under /assets."""

    def __init__(self, root: str, bucket: str, public_base_url: str):
        self.root = os.path.join(root, bucket)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(os.path.abspath(self.root) + os.sep):
            raise UploadError(f"Invalid object key: {key}")
        return path

    def upload(self, key, data, content_type, cache_control="3600", upsert=True) -> str:
        path = self.path_for(key)
        if not upsert and os.path.exists(path):
            raise UploadError(f"Object already exists: {key}")
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.warning("Local write failed for %s: %s", path, e)
            raise UploadError() from e
        return f"local://{path}"

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/assets/{key}"
