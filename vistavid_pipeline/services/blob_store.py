"""
Blob store adapters.

The workers only need a handful of object operations: check existence,
download to a local path, upload a local file with content metadata, delete,
and compute a public URL. `BlobStore` defines that surface; `S3BlobStore`
implements it with boto3 against any S3-compatible endpoint, and
`LocalBlobStore` against a plain directory for local runs and tests.
"""
import shutil
from pathlib import Path
from typing import Dict, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from ..domain.exceptions import ObjectNotAvailableException, StorageException, UploadException
from ..utils.format_utils import formatted_size

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class BlobStore:
    """
    Interface of the object storage used by the pipeline.

    Keys are POSIX-style paths such as `videos/abc.mp4` or
    `hls/abc/720p/segment_000.ts`.
    """

    bucket_name: str
    public_url_template: str

    def exists(self, key: str) -> bool:
        raise NotImplementedError("Subclasses must implement exists().")

    def download(self, key: str, destination: Path) -> Path:
        raise NotImplementedError("Subclasses must implement download().")

    def upload(self, source: Path, key: str, content_type: str, cache_control: str) -> None:
        raise NotImplementedError("Subclasses must implement upload().")

    def delete(self, key: str) -> None:
        raise NotImplementedError("Subclasses must implement delete().")

    def public_url(self, key: str) -> str:
        return self.public_url_template.format(bucket=self.bucket_name, key=key)


class S3BlobStore(BlobStore):
    """
    Blob store backed by an S3-compatible service (AWS S3, Cloudflare R2,
    or Google Cloud Storage through its interoperability endpoint).
    """

    def __init__(
        self,
        bucket_name: str,
        public_url_template: str,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client=None,
    ):
        self.bucket_name = bucket_name
        self.public_url_template = public_url_template
        if client is None:
            s3_kwargs = {}
            if endpoint_url:
                s3_kwargs["endpoint_url"] = endpoint_url
            if region:
                s3_kwargs["region_name"] = region
            client = boto3.client(
                "s3",
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=Config(signature_version="s3v4", retries={"max_attempts": 3}),
                **s3_kwargs,
            )
        self._s3 = client
        self._transfer_config = TransferConfig(
            multipart_threshold=8 * 1024 * 1024,
            multipart_chunksize=8 * 1024 * 1024,
            use_threads=True,
        )

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        return str(error.response.get("Error", {}).get("Code")) in _MISSING_CODES

    def exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise StorageException(f"Could not check s3://{self.bucket_name}/{key}: {e}") from e

    def download(self, key: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._s3.download_file(self.bucket_name, key, str(destination), Config=self._transfer_config)
        except ClientError as e:
            if self._is_missing(e):
                raise ObjectNotAvailableException(f"Object '{key}' does not exist") from e
            raise StorageException(f"Download of '{key}' failed: {e}") from e
        except BotoCoreError as e:
            raise StorageException(f"Download of '{key}' failed: {e}") from e
        logger.debug(f"Downloaded {key} ({formatted_size(destination.stat().st_size)})")
        return destination

    def upload(self, source: Path, key: str, content_type: str, cache_control: str) -> None:
        try:
            self._s3.upload_file(
                Filename=str(source),
                Bucket=self.bucket_name,
                Key=key,
                ExtraArgs={"ContentType": content_type, "CacheControl": cache_control},
                Config=self._transfer_config,
            )
        except (BotoCoreError, ClientError) as e:
            raise UploadException(f"Upload of '{key}' failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageException(f"Delete of '{key}' failed: {e}") from e


class LocalBlobStore(BlobStore):
    """
    Blob store backed by a local directory.

    Objects are files under `root`, named by their key. Content metadata is
    kept in memory in `metadata` (key -> {"contentType", "cacheControl"}).
    """

    def __init__(self, root: Path, bucket_name: str = "local", public_url_template: str = "file://{key}"):
        self.root = root.resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.bucket_name = bucket_name
        self.public_url_template = public_url_template
        self.metadata: Dict[str, Dict[str, str]] = {}

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageException(f"Key '{key}' escapes the storage root")
        return path

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def download(self, key: str, destination: Path) -> Path:
        source = self._path(key)
        if not source.is_file():
            raise ObjectNotAvailableException(f"Object '{key}' does not exist")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
        return destination

    def upload(self, source: Path, key: str, content_type: str, cache_control: str) -> None:
        target = self._path(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as e:
            raise UploadException(f"Upload of '{key}' failed: {e}") from e
        self.metadata[key] = {"contentType": content_type, "cacheControl": cache_control}

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.is_file():
            path.unlink()
        self.metadata.pop(key, None)

    def public_url(self, key: str) -> str:
        if self.public_url_template == "file://{key}":
            return self._path(key).as_uri()
        return super().public_url(key)

    def keys(self, prefix: str = "") -> list:
        """All stored keys under `prefix`, sorted."""
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file() and p.relative_to(self.root).as_posix().startswith(prefix)
        )
