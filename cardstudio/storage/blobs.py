"""Persistence for rendered card artifacts."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cardstudio.errors import StorageError
from cardstudio.utils.urls import sign_path

logger = logging.getLogger(__name__)

ARTIFACT_DIR = Path(os.environ.get("ARTIFACT_DIR", "artifacts"))
ARTIFACT_ROUTE = "/artifacts"


class BlobStore(Protocol):
    async def put_blob(self, data: bytes, filename: str) -> str: ...

    async def delete_blob(self, url: str) -> None: ...


def content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class LocalBlobStore:
    """Files under ``root``, referenced by signed ``/artifacts/<name>`` paths."""

    def __init__(self, root: Path | str = ARTIFACT_DIR) -> None:
        self.root = Path(root)

    def path_for(self, filename: str) -> Path:
        name = Path(filename).name
        if not name or name in {".", ".."}:
            raise StorageError(f"Invalid artifact name {filename!r}")
        return self.root / name

    async def put_blob(self, data: bytes, filename: str) -> str:
        path = self.path_for(filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc
        logger.info("Stored %s (%s bytes)", path, len(data))
        return sign_path(f"{ARTIFACT_ROUTE}/{path.name}")

    async def delete_blob(self, url: str) -> None:
        path = self.path_for(urlparse(url).path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete {path}: {exc}") from exc


class S3BlobStore:
    """S3-compatible bucket (AWS, R2, MinIO) accessed through boto3."""

    def __init__(
        self,
        bucket: str | None = None,
        *,
        client=None,
        public_url: str | None = None,
        prefix: str = "cards/",
    ) -> None:
        self.bucket = bucket or os.environ["AWS_S3_BUCKET"]
        self.client = client or boto3.session.Session().client(
            "s3",
            endpoint_url=os.environ.get("AWS_S3_ENDPOINT"),
            aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
            config=Config(signature_version="s3v4"),
        )
        self.public_url = (public_url or os.environ.get("BLOB_PUBLIC_URL", "")).rstrip("/")
        self.prefix = prefix

    def url_for(self, key: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{key}"
        return f"s3://{self.bucket}/{key}"

    def key_for(self, url: str) -> str:
        if self.public_url and url.startswith(self.public_url + "/"):
            return url[len(self.public_url) + 1 :]
        return urlparse(url).path.lstrip("/")

    async def put_blob(self, data: bytes, filename: str) -> str:
        key = f"{self.prefix}{Path(filename).name}"
        await self._call(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type(filename),
        )
        logger.info("Uploaded s3://%s/%s", self.bucket, key)
        return self.url_for(key)

    async def delete_blob(self, url: str) -> None:
        await self._call(self.client.delete_object, Bucket=self.bucket, Key=self.key_for(url))

    async def _call(self, method, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: method(**kwargs))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 request failed: {exc}") from exc
