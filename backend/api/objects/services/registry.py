"""Object registry: admission, expiring reads, and reclamation.

The registry is the only place that decides whether an object is live.
Expiry is checked against the clock on every read, so an object past its
``expires_at`` is never served even if no sweep has reclaimed it yet.

Blocking backend calls run in worker threads and are bounded by
``RegistryConfig.operation_timeout``. Admission writes the blob before the
metadata record; if the caller goes away or a write times out, a background
compensation waits for the in-flight call to settle and then removes
whatever it left behind.
"""

import asyncio
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Callable

from pydantic import BaseModel, Field

from api.objects.dto.object import (
    AdmitResult,
    FetchResult,
    ObjectRecord,
    ObjectStatus,
    SweepResult,
)
from api.objects.errors import (
    AdmissionError,
    MetadataWriteError,
    ObjectExpiredError,
    ObjectNotFoundError,
    StorageReadError,
    StorageWriteError,
)
from api.objects.repositories.objects_repository import (
    DuplicateObjectError,
    MetadataError,
    MetadataRepository,
)
from api.objects.storage.blob_store import BlobNotFoundError, BlobStore, BlobStoreError

logger = logging.getLogger(__name__)

_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_object_id() -> str:
    """128 random bits, URL-safe base64 without padding."""
    return secrets.token_urlsafe(16)


def storage_key_for(object_id: str, original_name: str) -> str:
    """Blob key for an object, keeping a plain file extension when there is one."""
    suffix = PurePosixPath(original_name.replace("\\", "/")).suffix
    if _EXTENSION.match(suffix):
        return f"{object_id}{suffix.lower()}"
    return object_id


class RegistryConfig(BaseModel):
    allowed_content_types: frozenset[str]
    max_size_bytes: int = Field(gt=0)
    default_ttl: timedelta = timedelta(hours=24)
    max_ttl: timedelta | None = None
    operation_timeout: float = Field(default=30.0, gt=0)
    id_attempts: int = Field(default=3, ge=1)


class ObjectRegistry:
    """Orchestrates the blob store and the metadata repository."""

    def __init__(
        self,
        config: RegistryConfig,
        blobs: BlobStore,
        records: MetadataRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.blobs = blobs
        self.records = records
        self._clock = clock
        self._compensations: set[asyncio.Task] = set()

    async def _bounded(self, func, *args):
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self.config.operation_timeout
        )

    # ------------------------------------------------------------------
    # Admit
    # ------------------------------------------------------------------

    def _validate_admission(
        self,
        data: bytes,
        original_name: str,
        content_type: str,
        size_bytes: int,
        ttl: timedelta | None,
    ) -> timedelta:
        if not original_name or not original_name.strip():
            raise AdmissionError("name", "A file name is required")

        if content_type not in self.config.allowed_content_types:
            raise AdmissionError("content_type", f"File type '{content_type}' is not allowed.")

        if size_bytes < 0 or size_bytes != len(data):
            raise AdmissionError(
                "size_mismatch",
                f"Declared size {size_bytes} does not match the {len(data)} bytes received",
            )
        if size_bytes > self.config.max_size_bytes:
            raise AdmissionError(
                "size", f"File exceeds max size of {self.config.max_size_bytes} bytes"
            )

        if ttl is None:
            ttl = self.config.default_ttl
        if ttl <= timedelta(0):
            raise AdmissionError("ttl", "Expiry must be in the future")
        if self.config.max_ttl is not None and ttl > self.config.max_ttl:
            raise AdmissionError(
                "ttl", f"Expiry exceeds the maximum of {self.config.max_ttl}"
            )
        return ttl

    async def admit(
        self,
        data: bytes,
        original_name: str,
        content_type: str,
        size_bytes: int,
        ttl: timedelta | None = None,
    ) -> AdmitResult:
        """
        Store a new object and register it with an expiry.

        Raises:
            AdmissionError: input rejected, nothing persisted
            StorageWriteError: blob write failed or timed out
            MetadataWriteError: metadata insert failed; the blob was discarded
        """
        ttl = self._validate_admission(data, original_name, content_type, size_bytes, ttl)

        for attempt in range(1, self.config.id_attempts + 1):
            object_id = generate_object_id()
            try:
                taken = await self._bounded(self.records.exists, object_id)
            except (asyncio.TimeoutError, MetadataError) as e:
                raise MetadataWriteError(f"Metadata store unavailable: {e!r}") from e
            if taken:
                logger.warning("Object id collision on %s (attempt %d)", object_id, attempt)
                continue

            now = self._clock()
            storage_key = storage_key_for(object_id, original_name)
            try:
                occupied = await self._bounded(self.blobs.exists, storage_key)
            except (asyncio.TimeoutError, BlobStoreError) as e:
                raise StorageWriteError(f"Blob store unavailable: {e!r}") from e
            if occupied:
                logger.warning("Blob key collision on %s (attempt %d)", storage_key, attempt)
                continue

            record = ObjectRecord(
                object_id=object_id,
                original_name=original_name,
                storage_key=storage_key,
                content_type=content_type,
                size_bytes=size_bytes,
                created_at=now,
                expires_at=now + ttl,
            )

            try:
                await self._write(record, self.blobs.put, record.storage_key, data, content_type)
            except asyncio.TimeoutError as e:
                raise StorageWriteError(f"Timed out writing blob for {object_id}") from e
            except BlobStoreError as e:
                await self._rollback(record)
                raise StorageWriteError(str(e)) from e

            try:
                await self._write(record, self.records.insert, record, inserts_record=True)
            except DuplicateObjectError:
                logger.warning("Object id collision on insert of %s (attempt %d)", object_id, attempt)
                await asyncio.shield(self._track(self._discard_collided_blob(record)))
                continue
            except asyncio.TimeoutError as e:
                raise MetadataWriteError(f"Timed out saving metadata for {object_id}") from e
            except MetadataError as e:
                await self._rollback(record)
                raise MetadataWriteError(str(e)) from e

            logger.info(
                "Admitted %s (%s, %d bytes) until %s",
                object_id,
                content_type,
                size_bytes,
                record.expires_at.isoformat(),
            )
            return AdmitResult(object_id=object_id, expires_at=record.expires_at)

        raise MetadataWriteError(
            f"Could not allocate a unique object id after {self.config.id_attempts} attempts"
        )

    async def _write(self, record: ObjectRecord, func, *args, inserts_record: bool = False):
        """Run one admission write; if abandoned, roll back once it settles."""
        task = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(
                asyncio.shield(task), timeout=self.config.operation_timeout
            )
        except (asyncio.TimeoutError, asyncio.CancelledError):
            self._schedule_rollback(record, task, inserts_record)
            raise

    def _schedule_rollback(
        self,
        record: ObjectRecord,
        pending: asyncio.Future | None = None,
        inserts_record: bool = False,
    ) -> asyncio.Task:
        return self._track(self._undo_admission(record, pending, inserts_record))

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._compensations.add(task)
        task.add_done_callback(self._compensations.discard)
        return task

    async def _rollback(self, record: ObjectRecord) -> None:
        # Runs to completion even if the caller is cancelled.
        await asyncio.shield(self._schedule_rollback(record))

    async def _undo_admission(
        self,
        record: ObjectRecord,
        pending: asyncio.Future | None,
        inserts_record: bool,
    ) -> None:
        inserted = False
        if pending is not None:
            try:
                await pending
                inserted = inserts_record
            except DuplicateObjectError:
                logger.warning("Abandoned insert of %s collided", record.object_id)
                await self._discard_collided_blob(record)
                return
            except (BlobStoreError, MetadataError) as e:
                logger.info("Abandoned write for %s failed: %s", record.object_id, e)

        if inserted:
            try:
                await self._bounded(self.records.delete, record.object_id)
            except (asyncio.TimeoutError, MetadataError) as e:
                logger.error(
                    "Failed to remove metadata for abandoned upload %s: %r",
                    record.object_id,
                    e,
                )
                return

        try:
            await self._bounded(self.blobs.delete, record.storage_key)
        except (asyncio.TimeoutError, BlobStoreError) as e:
            logger.error("Orphaned blob %s left behind: %r", record.storage_key, e)

    async def _discard_collided_blob(self, record: ObjectRecord) -> None:
        """Delete the blob of an attempt whose insert lost an id collision."""
        try:
            winner = await self._bounded(self.records.get, record.object_id)
        except (asyncio.TimeoutError, MetadataError) as e:
            logger.error("Could not resolve collision on %s: %r", record.object_id, e)
            return
        if winner is not None and winner.storage_key == record.storage_key:
            logger.error(
                "Blob %s was written by a colliding upload of %s",
                record.storage_key,
                record.object_id,
            )
            return

        try:
            await self._bounded(self.blobs.delete, record.storage_key)
        except (asyncio.TimeoutError, BlobStoreError) as e:
            logger.error("Orphaned blob %s left behind: %r", record.storage_key, e)

    async def aclose(self) -> None:
        """Wait for outstanding admission rollbacks."""
        if self._compensations:
            await asyncio.gather(*list(self._compensations), return_exceptions=True)

    # ------------------------------------------------------------------
    # Fetch / Status
    # ------------------------------------------------------------------

    async def _live_record(self, object_id: str, now: datetime) -> ObjectRecord:
        try:
            record = await self._bounded(self.records.get, object_id)
        except (asyncio.TimeoutError, MetadataError) as e:
            raise StorageReadError(f"Metadata store unavailable: {e!r}") from e

        if record is None:
            raise ObjectNotFoundError(object_id)
        if record.is_expired(now):
            raise ObjectExpiredError(object_id, record.expires_at)
        return record

    async def fetch(self, object_id: str) -> FetchResult:
        """
        Return the object's bytes if it has not expired, counting the download.

        Raises:
            ObjectNotFoundError: unknown id, or blob missing despite metadata
            ObjectExpiredError: past expires_at (counter untouched)
            StorageReadError: a backend failed or timed out
        """
        record = await self._live_record(object_id, self._clock())

        try:
            content = await self._bounded(self.blobs.get, record.storage_key)
        except BlobNotFoundError:
            logger.warning(
                "Blob %s missing for object %s; treating as not found",
                record.storage_key,
                object_id,
            )
            raise ObjectNotFoundError(object_id) from None
        except asyncio.TimeoutError as e:
            raise StorageReadError(f"Timed out reading blob for {object_id}") from e
        except BlobStoreError as e:
            raise StorageReadError(str(e)) from e

        try:
            counted = await self._bounded(self.records.increment_download_count, object_id)
        except (asyncio.TimeoutError, MetadataError) as e:
            raise StorageReadError(f"Failed to record download of {object_id}: {e!r}") from e
        if not counted:
            logger.info("Object %s was reclaimed while being fetched", object_id)
            raise ObjectNotFoundError(object_id)

        return FetchResult(
            content=content,
            content_type=record.content_type,
            original_name=record.original_name,
            size_bytes=record.size_bytes,
        )

    async def status(self, object_id: str) -> ObjectStatus:
        """Same checks as fetch, without touching the blob or the counter."""
        now = self._clock()
        record = await self._live_record(object_id, now)
        return ObjectStatus.from_record(record, now)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    async def sweep(self) -> SweepResult:
        """
        Delete every expired object, blob first, then metadata.

        A record whose blob could not be deleted keeps its metadata so a
        later sweep retries it. Deleting something already gone is not an
        error, so overlapping sweeps are harmless.
        """
        try:
            expired = await self._bounded(self.records.list_expired, self._clock())
        except (asyncio.TimeoutError, MetadataError) as e:
            logger.error("Sweep could not list expired objects: %r", e)
            return SweepResult(deleted_count=0, error_count=1)

        deleted = 0
        errors = 0
        for record in expired:
            try:
                await self._bounded(self.blobs.delete, record.storage_key)
                removed = await self._bounded(self.records.delete, record.object_id)
            except (asyncio.TimeoutError, BlobStoreError, MetadataError) as e:
                errors += 1
                logger.warning("Failed to reclaim %s: %r", record.object_id, e)
                continue
            if removed:
                deleted += 1

        if expired:
            logger.info("Sweep completed: %d deleted, %d errors", deleted, errors)
        return SweepResult(deleted_count=deleted, error_count=errors)
