"""S3 block store: staged blocks as objects, commit via multipart copy."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from typing import Any, Protocol, cast

from botocore.exceptions import BotoCoreError, ClientError

from streamverse_ingest.domain.errors import (
    CommitError,
    ObjectNotFoundError,
    StagingError,
    TransferConfigurationError,
)
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.ports import BlockStore

_DEFAULT_STAGING_PREFIX = ".staging"
_MIN_MULTIPART_PART_BYTES = 5 * 1024 * 1024
_DEFAULT_COMMIT_CONCURRENCY = 4
_DELETE_BATCH_SIZE = 1000
_MISSING_CODES = frozenset({"404", "NoSuchKey", "NoSuchBucket", "NotFound"})

logger = logging.getLogger(__name__)


class S3Client(Protocol):
    """Subset of S3 client operations used by the block store."""

    def head_bucket(self, *, Bucket: str) -> dict[str, Any]:
        """Check bucket existence."""

    def create_bucket(self, **kwargs: Any) -> dict[str, Any]:
        """Create a bucket."""

    def put_bucket_policy(self, *, Bucket: str, Policy: str) -> dict[str, Any]:
        """Attach a bucket policy."""

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        """Write one object."""

    def copy_object(self, **kwargs: Any) -> dict[str, Any]:
        """Copy an object without multipart."""

    def create_multipart_upload(self, **kwargs: Any) -> dict[str, Any]:
        """Start multipart upload."""

    def upload_part_copy(
        self,
        *,
        Bucket: str,
        Key: str,
        UploadId: str,
        PartNumber: int,
        CopySource: dict[str, str],
    ) -> dict[str, Any]:
        """Copy one object into a multipart segment."""

    def complete_multipart_upload(
        self,
        *,
        Bucket: str,
        Key: str,
        UploadId: str,
        MultipartUpload: dict[str, list[dict[str, str | int]]],
    ) -> dict[str, Any]:
        """Finalize multipart upload."""

    def abort_multipart_upload(self, *, Bucket: str, Key: str, UploadId: str) -> dict[str, Any]:
        """Abort multipart upload."""

    def delete_objects(self, *, Bucket: str, Delete: dict[str, Any]) -> dict[str, Any]:
        """Delete a batch of objects."""

    def head_object(self, *, Bucket: str, Key: str) -> dict[str, Any]:
        """Return object metadata."""

    def get_object(self, *, Bucket: str, Key: str, Range: str | None = None) -> dict[str, Any]:
        """Read an object or a byte range of it."""


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3BlockStore(BlockStore):
    """Block store over one S3 bucket.

    - `stage_block` writes `<staging_prefix>/<object>/<staging_id>/<block_id>`;
      re-staging a block id overwrites it, so retries are safe.
    - `commit` assembles staged blocks with `upload_part_copy` (part n+1 is
      block n of the given list) and then deletes the staged copies.
    - The store keeps no per-object state between calls.
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        staging_prefix: str = _DEFAULT_STAGING_PREFIX,
        public_read: bool = True,
        max_pool_connections: int = 16,
        commit_concurrency: int = _DEFAULT_COMMIT_CONCURRENCY,
        s3_client_factory: Callable[[], S3Client] | None = None,
    ) -> None:
        if not bucket.strip():
            raise TransferConfigurationError("An S3 bucket name is required.")
        self._bucket = bucket
        self._region = region
        self._endpoint_url = endpoint_url
        self._staging_prefix = staging_prefix.strip("/") or _DEFAULT_STAGING_PREFIX
        self._public_read = public_read
        self._max_pool_connections = max(1, max_pool_connections)
        self._commit_concurrency = max(1, commit_concurrency)
        self._s3_client_factory = s3_client_factory or self._build_default_s3_client
        self._client: S3Client | None = None
        self._container_ready = False
        self._container_lock = asyncio.Lock()

    @property
    def bucket(self) -> str:
        return self._bucket

    @property
    def min_block_bytes(self) -> int:
        """S3 rejects multipart parts under 5 MiB except the last one."""

        return _MIN_MULTIPART_PART_BYTES

    async def ensure_container(self) -> None:
        """Create the bucket if needed and apply the read policy once."""

        async with self._container_lock:
            if self._container_ready:
                return
            client = self._get_client()
            try:
                await self._create_bucket_if_missing(client)
                if self._public_read:
                    await asyncio.to_thread(
                        client.put_bucket_policy,
                        Bucket=self._bucket,
                        Policy=self._public_read_policy(),
                    )
            except (ClientError, BotoCoreError) as exc:
                raise TransferConfigurationError(
                    f"Destination bucket '{self._bucket}' is not usable: {exc}"
                ) from exc
            self._container_ready = True

    async def stage_block(
        self,
        object_name: str,
        block_id: str,
        data: bytes,
        *,
        staging_id: str,
    ) -> None:
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=self._bucket,
                Key=self._staging_key(object_name, staging_id, block_id),
                Body=data,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StagingError(
                f"Staging block '{block_id}' of '{object_name}' failed: {exc}"
            ) from exc

    async def commit(
        self,
        object_name: str,
        block_ids: Sequence[str],
        content_type: str,
        *,
        staging_id: str,
    ) -> None:
        client = self._get_client()
        try:
            if not block_ids:
                await asyncio.to_thread(
                    client.put_object,
                    Bucket=self._bucket,
                    Key=object_name,
                    Body=b"",
                    ContentType=content_type,
                )
            elif len(block_ids) == 1:
                await asyncio.to_thread(
                    client.copy_object,
                    Bucket=self._bucket,
                    Key=object_name,
                    CopySource=self._copy_source(object_name, staging_id, block_ids[0]),
                    ContentType=content_type,
                    MetadataDirective="REPLACE",
                )
            else:
                await self._commit_multipart(
                    client, object_name, staging_id, block_ids, content_type
                )
        except (ClientError, BotoCoreError) as exc:
            if isinstance(exc, ClientError) and _error_code(exc) in _MISSING_CODES:
                raise CommitError(
                    f"Cannot commit '{object_name}': a referenced block was never staged."
                ) from exc
            raise CommitError(f"Commit of '{object_name}' failed: {exc}") from exc

        await self.discard_blocks(object_name, block_ids, staging_id=staging_id)

    async def discard_blocks(
        self,
        object_name: str,
        block_ids: Sequence[str],
        *,
        staging_id: str,
    ) -> None:
        if not block_ids:
            return
        client = self._get_client()
        keys = [self._staging_key(object_name, staging_id, block_id) for block_id in block_ids]
        for index in range(0, len(keys), _DELETE_BATCH_SIZE):
            batch = keys[index : index + _DELETE_BATCH_SIZE]
            try:
                await asyncio.to_thread(
                    client.delete_objects,
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                logger.warning(
                    "Failed to delete %d staged blocks of '%s': %s",
                    len(batch),
                    object_name,
                    exc,
                )

    async def exists(self, object_name: str) -> ObjectInfo | None:
        client = self._get_client()
        try:
            response = await asyncio.to_thread(
                client.head_object,
                Bucket=self._bucket,
                Key=object_name,
            )
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return None
            raise
        size = response.get("ContentLength")
        if not isinstance(size, int):
            raise RuntimeError("head_object did not return ContentLength")
        return ObjectInfo(
            name=object_name,
            size=size,
            content_type=cast(str | None, response.get("ContentType")),
        )

    async def read_range(self, object_name: str, start: int, end: int) -> bytes:
        client = self._get_client()
        try:
            response = await asyncio.to_thread(
                client.get_object,
                Bucket=self._bucket,
                Key=object_name,
                Range=f"bytes={start}-{end}",
            )
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise ObjectNotFoundError(f"Object '{object_name}' not found.") from exc
            raise
        body = response.get("Body")
        if hasattr(body, "read"):
            return cast(bytes, await asyncio.to_thread(body.read))
        return cast(bytes, body)

    async def _create_bucket_if_missing(self, client: S3Client) -> None:
        try:
            await asyncio.to_thread(client.head_bucket, Bucket=self._bucket)
            return
        except ClientError as exc:
            if _error_code(exc) not in _MISSING_CODES:
                raise

        kwargs: dict[str, Any] = {"Bucket": self._bucket}
        if self._region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region}
        await asyncio.to_thread(client.create_bucket, **kwargs)
        logger.info("Created destination bucket '%s'.", self._bucket)

    async def _commit_multipart(
        self,
        client: S3Client,
        object_name: str,
        staging_id: str,
        block_ids: Sequence[str],
        content_type: str,
    ) -> None:
        response = await asyncio.to_thread(
            client.create_multipart_upload,
            Bucket=self._bucket,
            Key=object_name,
            ContentType=content_type,
        )
        upload_id = response.get("UploadId")
        if not isinstance(upload_id, str) or not upload_id:
            raise CommitError("create_multipart_upload did not return UploadId")

        try:
            etags: dict[int, str] = {}
            numbered = list(enumerate(block_ids, start=1))
            for index in range(0, len(numbered), self._commit_concurrency):
                batch = numbered[index : index + self._commit_concurrency]
                results = await asyncio.gather(
                    *[
                        self._copy_part(
                            client, object_name, staging_id, upload_id, part_number, block_id
                        )
                        for part_number, block_id in batch
                    ]
                )
                for part_number, etag in results:
                    etags[part_number] = etag

            await asyncio.to_thread(
                client.complete_multipart_upload,
                Bucket=self._bucket,
                Key=object_name,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"PartNumber": number, "ETag": etag}
                        for number, etag in sorted(etags.items())
                    ]
                },
            )
        except BaseException:
            await self._abort_multipart(client, object_name, upload_id)
            raise

    async def _copy_part(
        self,
        client: S3Client,
        object_name: str,
        staging_id: str,
        upload_id: str,
        part_number: int,
        block_id: str,
    ) -> tuple[int, str]:
        response = await asyncio.to_thread(
            client.upload_part_copy,
            Bucket=self._bucket,
            Key=object_name,
            UploadId=upload_id,
            PartNumber=part_number,
            CopySource=self._copy_source(object_name, staging_id, block_id),
        )
        copy_part_result = cast(dict[str, Any] | None, response.get("CopyPartResult"))
        etag = None if copy_part_result is None else copy_part_result.get("ETag")
        if not isinstance(etag, str) or not etag:
            raise CommitError("upload_part_copy did not return CopyPartResult.ETag")
        return part_number, etag

    async def _abort_multipart(self, client: S3Client, object_name: str, upload_id: str) -> None:
        try:
            await asyncio.to_thread(
                client.abort_multipart_upload,
                Bucket=self._bucket,
                Key=object_name,
                UploadId=upload_id,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Failed to abort multipart upload of '%s': %s", object_name, exc)

    def _staging_key(self, object_name: str, staging_id: str, block_id: str) -> str:
        return f"{self._staging_prefix}/{object_name}/{staging_id}/{block_id}"

    def _copy_source(self, object_name: str, staging_id: str, block_id: str) -> dict[str, str]:
        return {
            "Bucket": self._bucket,
            "Key": self._staging_key(object_name, staging_id, block_id),
        }

    def _public_read_policy(self) -> str:
        return json.dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Sid": "PublicReadForPlayback",
                        "Effect": "Allow",
                        "Principal": "*",
                        "Action": ["s3:GetObject"],
                        "Resource": [f"arn:aws:s3:::{self._bucket}/*"],
                    }
                ],
            }
        )

    def _get_client(self) -> S3Client:
        if self._client is None:
            self._client = self._s3_client_factory()
        return self._client

    def _build_default_s3_client(self) -> S3Client:
        """Create a boto3 S3 client lazily to avoid import-time hard dependency."""

        try:
            import boto3  # type: ignore[import-not-found]
            from botocore.config import Config
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "boto3 is required for the S3 block store. Install project dependencies first."
            ) from exc

        client = boto3.client(
            "s3",
            region_name=self._region,
            endpoint_url=self._endpoint_url,
            config=Config(max_pool_connections=self._max_pool_connections),
        )
        return cast(S3Client, client)


__all__ = ["S3BlockStore", "S3Client"]
