"""Remote object sources and the local staging area."""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import AwsConfig, StagingConfig
from .errors import LocalIOError, ObjectNotFound, StagingError, StorageBackendError
from .interfaces import ObjectSource
from .models import StagedObject

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}


def build_s3_client(aws: AwsConfig):
    return boto3.client("s3", region_name=aws.region, endpoint_url=aws.endpoint_url)


def build_lambda_client(aws: AwsConfig):
    return boto3.client("lambda", region_name=aws.region, endpoint_url=aws.endpoint_url)


class S3ObjectSource(ObjectSource):
    """Streams objects out of S3 with ``get_object``."""

    def __init__(self, s3_client, chunk_size: int = 1024 * 1024) -> None:
        self._s3_client = s3_client
        self._chunk_size = chunk_size

    def fetch(self, bucket: str, key: str, destination: Path) -> int:
        try:
            response = self._s3_client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            raise self._translate(e, bucket, key) from e
        except BotoCoreError as e:
            raise StorageBackendError(f"S3 request failed: {e}", bucket=bucket, key=key) from e

        body = response["Body"]
        written = 0
        try:
            with open(destination, "wb") as fh:
                for chunk in body.iter_chunks(self._chunk_size):
                    fh.write(chunk)
                    written += len(chunk)
        except OSError as e:
            raise LocalIOError(f"Cannot write {destination}: {e}", bucket=bucket, key=key) from e
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError(f"S3 stream interrupted: {e}", bucket=bucket, key=key) from e
        finally:
            body.close()
        return written

    @staticmethod
    def _translate(error: ClientError, bucket: str, key: str) -> StagingError:
        code = error.response.get("Error", {}).get("Code", "")
        request_id = error.response.get("ResponseMetadata", {}).get("RequestId")
        if code in NOT_FOUND_CODES:
            return ObjectNotFound("Object not found", bucket=bucket, key=key)
        return StorageBackendError(
            error.response.get("Error", {}).get("Message") or "S3 error",
            bucket=bucket,
            key=key,
            error_code=code or None,
            request_id=request_id,
        )


class LocalDirectoryObjectSource(ObjectSource):
    """Serves ``<root>/<bucket>/<key>`` as if it were a remote object."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def fetch(self, bucket: str, key: str, destination: Path) -> int:
        source = self._root / bucket / key
        if not source.is_file():
            raise ObjectNotFound("Object not found", bucket=bucket, key=key)
        try:
            shutil.copyfile(source, destination)
        except OSError as e:
            raise LocalIOError(f"Cannot copy {source} to {destination}: {e}", bucket=bucket, key=key) from e
        return destination.stat().st_size


def build_object_source(
    staging: StagingConfig,
    aws: AwsConfig,
    source_root: Optional[Path] = None,
) -> ObjectSource:
    if source_root is not None:
        return LocalDirectoryObjectSource(source_root)
    return S3ObjectSource(build_s3_client(aws), chunk_size=staging.chunk_size)


class ObjectStager:
    """Places local copies of remote objects in the staging directory.

    Copies are named after the key's final path segment. Two keys sharing a
    final segment map to the same file; the later copy overwrites the earlier.
    """

    def __init__(self, source: ObjectSource, config: Optional[StagingConfig] = None) -> None:
        self._source = source
        self._config = config or StagingConfig()

    @property
    def directory(self) -> Path:
        return self._config.path

    def local_path_for(self, key: str) -> Path:
        name = key.rsplit("/", 1)[-1]
        if name in ("", ".", ".."):
            raise LocalIOError("Object key has no usable file name", key=key)
        return self.directory / name

    def acquire(self, bucket: str, key: str) -> StagedObject:
        local_path = self.local_path_for(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalIOError(f"Cannot create staging directory {self.directory}: {e}", key=key) from e

        try:
            size = self._source.fetch(bucket, key, local_path)
        except BaseException:
            self._discard(local_path)
            raise

        logger.info("Downloaded s3://%s/%s to %s (%d bytes)", bucket, key, local_path, size)
        return StagedObject(bucket=bucket, key=key, local_path=local_path, size_bytes=size)

    def release(self, staged: StagedObject) -> None:
        """Delete the local copy. Never raises."""
        try:
            if staged.local_path.exists():
                staged.local_path.unlink()
                logger.info("Deleted: %s", staged.local_path)
        except OSError as e:
            logger.warning("Cleanup failed for: %s, reason: %s", staged.local_path, e)

    @contextmanager
    def staged(self, bucket: str, key: str) -> Iterator[StagedObject]:
        staged = self.acquire(bucket, key)
        try:
            yield staged
        finally:
            self.release(staged)

    def list_staged(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.name for p in self.directory.iterdir() if p.is_file())

    def sweep(self) -> int:
        """Remove every file left in the staging directory."""
        removed = 0
        if not self.directory.is_dir():
            return removed
        for path in self.directory.iterdir():
            if not path.is_file():
                continue
            try:
                path.unlink()
                removed += 1
                logger.debug("Deleted from staging: %s", path.name)
            except OSError as e:
                logger.warning("Failed to delete: %s (%s)", path.name, e)
        return removed

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning("Could not remove partial download %s: %s", path, e)
