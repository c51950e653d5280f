from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from voicenotes.core.errors import StorageError
from voicenotes.utils.logging import get_logger
from voicenotes.utils.validation import sanitize_storage_key

if TYPE_CHECKING:
    from collections.abc import Iterator

    from voicenotes.config import Settings

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024
LOCAL_PREFIX = "/uploads/"


def build_storage_key(user_id: uuid.UUID | str, filename: str) -> str:
    """Collision-resistant key scoped to the owning user."""
    safe_name = sanitize_storage_key(filename or "audio").replace("/", "_")
    return f"{user_id}/{uuid.uuid4().hex}_{safe_name}"


class StorageBackend(ABC):
    """Blob storage for audio files, addressed by opaque locator strings."""

    def __init__(self, scratch_dir: str | None = None) -> None:
        self._scratch_dir = scratch_dir

    @abstractmethod
    async def put(self, data: bytes, key: str, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its locator."""

    @abstractmethod
    async def size(self, locator: str) -> int:
        """Return the stored object's size in bytes."""

    @abstractmethod
    def open_range(self, locator: str, start: int = 0, end: int | None = None) -> Iterator[bytes]:
        """Yield the bytes ``start..end`` (inclusive) of the object.

        Blocking iterator; Starlette runs sync iterators in its threadpool.
        """

    @abstractmethod
    async def _delete(self, locator: str) -> None: ...

    @abstractmethod
    async def _download(self, locator: str, target: Path) -> None: ...

    async def delete(self, locator: str) -> None:
        """Remove the object; failures are logged, never raised."""
        try:
            await self._delete(locator)
        except Exception as err:
            logger.warning("Failed to delete stored object", extra={"locator": locator, "error": str(err)})

    async def download_to_scratch(self, locator: str) -> Path:
        """Copy the object into a fresh scratch file and return its path."""
        suffix = Path(locator).suffix or ".bin"
        fd, name = tempfile.mkstemp(prefix="voicenote_", suffix=suffix, dir=self._scratch_dir)
        target = Path(name)
        os.close(fd)
        try:
            await self._download(locator, target)
        except Exception:
            self.cleanup_scratch(target)
            raise
        logger.debug("Downloaded object to scratch", extra={"locator": locator, "path": str(target)})
        return target

    @staticmethod
    def cleanup_scratch(*paths: Path | str | None) -> None:
        for path in paths:
            if not path:
                continue
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as err:
                logger.warning("Failed to remove scratch file", extra={"path": str(path), "error": str(err)})


class LocalStorageBackend(StorageBackend):
    """Files under a root directory; locators look like ``/uploads/<key>``."""

    def __init__(self, root: str | Path, scratch_dir: str | None = None) -> None:
        super().__init__(scratch_dir)
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, locator: str) -> Path:
        if not locator.startswith(LOCAL_PREFIX):
            raise StorageError(f"Not a local storage locator: {locator}")
        key = sanitize_storage_key(locator[len(LOCAL_PREFIX):])
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise StorageError(f"Locator escapes storage root: {locator}")
        return path

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        locator = LOCAL_PREFIX + sanitize_storage_key(key)
        path = self._path_for(locator)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as err:
            raise StorageError(f"Failed to store {key}: {err}") from err
        logger.info("Stored audio locally", extra={"locator": locator, "size": len(data), "content_type": content_type})
        return locator

    async def size(self, locator: str) -> int:
        path = self._path_for(locator)
        try:
            return (await asyncio.to_thread(path.stat)).st_size
        except FileNotFoundError as err:
            raise StorageError(f"Audio file not found: {locator}") from err

    def open_range(self, locator: str, start: int = 0, end: int | None = None) -> Iterator[bytes]:
        path = self._path_for(locator)
        if not path.exists():
            raise StorageError(f"Audio file not found: {locator}")
        return self._iter_file(path, start, end)

    @staticmethod
    def _iter_file(path: Path, start: int, end: int | None) -> Iterator[bytes]:
        with path.open("rb") as fh:
            fh.seek(start)
            remaining = None if end is None else end - start + 1
            while remaining is None or remaining > 0:
                chunk = fh.read(CHUNK_SIZE if remaining is None else min(CHUNK_SIZE, remaining))
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk

    async def _delete(self, locator: str) -> None:
        path = self._path_for(locator)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    async def _download(self, locator: str, target: Path) -> None:
        source = self._path_for(locator)
        try:
            await asyncio.to_thread(shutil.copyfile, source, target)
        except OSError as err:
            raise StorageError(f"Failed to read {locator}: {err}") from err


class S3StorageBackend(StorageBackend):
    """S3 (or S3-compatible) bucket; locators look like ``s3://<bucket>/audio/<key>``."""

    KEY_PREFIX = "audio/"

    def __init__(self, bucket: str, *, client=None, scratch_dir: str | None = None) -> None:
        super().__init__(scratch_dir)
        self._bucket = bucket
        self._client = client or boto3.client("s3")

    def _key_for(self, locator: str) -> str:
        prefix = f"s3://{self._bucket}/"
        if not locator.startswith(prefix):
            raise StorageError(f"Not a locator for bucket {self._bucket}: {locator}")
        return locator[len(prefix):]

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        object_key = self.KEY_PREFIX + sanitize_storage_key(key)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as err:
            raise StorageError(f"S3 upload failed for {key}: {err}") from err
        locator = f"s3://{self._bucket}/{object_key}"
        logger.info("Stored audio in S3", extra={"locator": locator, "size": len(data)})
        return locator

    async def size(self, locator: str) -> int:
        try:
            head = await asyncio.to_thread(self._client.head_object, Bucket=self._bucket, Key=self._key_for(locator))
        except (BotoCoreError, ClientError) as err:
            raise StorageError(f"Audio object not found: {locator}") from err
        return int(head["ContentLength"])

    def open_range(self, locator: str, start: int = 0, end: int | None = None) -> Iterator[bytes]:
        params = {"Bucket": self._bucket, "Key": self._key_for(locator)}
        if start or end is not None:
            params["Range"] = f"bytes={start}-{'' if end is None else end}"
        try:
            body = self._client.get_object(**params)["Body"]
        except (BotoCoreError, ClientError) as err:
            raise StorageError(f"Failed to read {locator}: {err}") from err
        return body.iter_chunks(CHUNK_SIZE)

    async def _delete(self, locator: str) -> None:
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=self._key_for(locator))

    async def _download(self, locator: str, target: Path) -> None:
        try:
            await asyncio.to_thread(self._client.download_file, self._bucket, self._key_for(locator), str(target))
        except (BotoCoreError, ClientError) as err:
            raise StorageError(f"Failed to download {locator}: {err}") from err


def build_storage_backend(settings: Settings) -> StorageBackend:
    """Select the storage backend once, from configuration."""
    if settings.storage_backend == "s3":
        if not settings.s3_bucket_name:
            raise RuntimeError("APP_S3_BUCKET_NAME is required when APP_STORAGE_BACKEND=s3")
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
        logger.info("Using S3 storage backend", extra={"bucket": settings.s3_bucket_name})
        return S3StorageBackend(settings.s3_bucket_name, client=client, scratch_dir=settings.scratch_dir)
    logger.info("Using local storage backend", extra={"root": settings.local_storage_path})
    return LocalStorageBackend(settings.local_storage_path, scratch_dir=settings.scratch_dir)
