# plates/coordinator.py

"""
Where plate images live and how they move between tiers.

Local files are the source of truth for "does this record have an image".
The S3 copy is best-effort: save, delete and migration swallow cloud
failures, and load only reaches for the cloud once both local files miss.
"""

import asyncio
import logging
from os.path import basename, splitext
from typing import Awaitable, Callable, List, Optional, Set

from .catalog import CatalogStore
from .exceptions import LocalReadMiss, RemoteError
from .local_cache import LocalBlobCache
from .mutations import CatalogWriter, mark_migration_completed, set_cloud_id
from .optimizer import ImageOptimizer
from .s3_utils import RemoteObjectStore
from .schemas import PlateMetadata, PlateRecord

logger = logging.getLogger(__name__)

CacheUpdateCallback = Callable[[str, str], Awaitable[None]]


class PersistenceCoordinator:
    def __init__(
        self,
        cache: LocalBlobCache,
        remote: RemoteObjectStore,
        optimizer: ImageOptimizer,
        writer: CatalogWriter,
        on_cache_updated: Optional[CacheUpdateCallback] = None,
    ):
        self.cache = cache
        self.remote = remote
        self.optimizer = optimizer
        self.writer = writer
        self.on_cache_updated = on_cache_updated
        self._deleted_cloud_ids: Set[str] = set()
        self._background: Set[asyncio.Task] = set()
        self._migration: Optional[asyncio.Task] = None

    @property
    def catalog(self) -> CatalogStore:
        return self.writer.catalog

    @property
    def cloud_available(self) -> bool:
        return self.remote.configured and self.remote.state.available

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background cloud deletes and cache-pointer reports."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _upload(self, data: bytes, name: str) -> Optional[str]:
        if not self.cloud_available:
            logger.info(f"Skipping upload of {name}: cloud unavailable ({self.remote.state.reason})")
            return None
        try:
            return await self.remote.upload(data, name)
        except RemoteError as e:
            logger.warning(f"S3 upload failed, keeping local copy only: {name}: {e}")
            return None

    async def save_new_image(self, raw_bytes: bytes, metadata: PlateMetadata) -> PlateRecord:
        """
        Optimize, write locally, then try to upload.

        Raises LocalWriteFailed when the local write fails; a failed upload
        still returns a record, just without a cloud id.
        """
        optimized = await asyncio.to_thread(self.optimizer.normalize, raw_bytes)
        if optimized.size_exceeded:
            logger.warning(
                f"Saving '{metadata.title}' above the size bound: {len(optimized.data)} bytes "
                f"at quality {optimized.quality}"
            )

        local_path = await asyncio.to_thread(self.cache.write, optimized.data, optimized.extension)
        cloud_id = await self._upload(optimized.data, basename(local_path))

        record = PlateRecord(
            title=metadata.title,
            plate_number=metadata.plate_number,
            category=metadata.category,
            local_path=local_path,
            cloud_id=cloud_id,
        )
        logger.info(f"Saved image for record {record.id}: local={local_path} cloud={cloud_id}")
        return record

    async def _read_local(self, path: Optional[str], tier: str, record_id: str) -> Optional[bytes]:
        if not path:
            return None
        try:
            return await asyncio.to_thread(self.cache.read, path)
        except LocalReadMiss:
            logger.debug(f"{tier} miss for record {record_id}: {path}")
            return None

    async def _report_cache_path(self, record_id: str, cache_path: str) -> None:
        try:
            await self.on_cache_updated(record_id, cache_path)
        except Exception as e:
            logger.error(f"Failed to record cache path for {record_id}: {e}")

    async def load_image(self, record: PlateRecord) -> Optional[bytes]:
        """
        Local file, then cache file, then S3.

        A cloud hit is written to a new cache file whose path is reported
        through ``on_cache_updated`` in the background. Returns None only
        when every tier misses.
        """
        data = await self._read_local(record.local_path, "Local", record.id)
        if data is not None:
            return data

        data = await self._read_local(record.cache_path, "Cache", record.id)
        if data is not None:
            return data

        cloud_id = record.cloud_id
        if not cloud_id or cloud_id in self._deleted_cloud_ids:
            return None
        if not self.cloud_available:
            logger.info(f"Image for record {record.id} not local and cloud unavailable")
            return None

        try:
            data = await self.remote.download(cloud_id)
        except RemoteError as e:
            logger.warning(f"Cloud fetch failed for record {record.id} ({cloud_id}): {e}")
            return None

        try:
            ext = splitext(cloud_id)[1] or ".jpg"
            cache_path = await asyncio.to_thread(self.cache.write_cache, data, ext)
        except Exception as e:
            logger.warning(f"Fetched {cloud_id} but could not cache it: {e}")
            return data

        if self.on_cache_updated is not None:
            self._spawn(self._report_cache_path(record.id, cache_path), f"cache-pointer-{record.id}")
        return data

    async def _delete_remote(self, cloud_id: str) -> None:
        try:
            await self.remote.delete(cloud_id)
        except RemoteError as e:
            logger.warning(f"Failed to delete S3 object {cloud_id}, leaving it: {e}")

    async def delete_image(self, record: PlateRecord) -> None:
        """
        Remove the local and cache files; ask S3 to delete its copy in the
        background. Never waits for, or fails because of, the cloud.
        """
        if record.cloud_id:
            self._deleted_cloud_ids.add(record.cloud_id)

        await asyncio.to_thread(self.cache.delete, record.local_path)
        await asyncio.to_thread(self.cache.delete, record.cache_path)

        if record.cloud_id:
            if self.cloud_available:
                self._spawn(self._delete_remote(record.cloud_id), f"cloud-delete-{record.id}")
            else:
                logger.info(f"Cloud unavailable, not deleting S3 object {record.cloud_id}")

    async def migrate_local_only_images(self, records: List[PlateRecord]) -> List[PlateRecord]:
        """
        One-time upload of records that only exist locally.

        Runs at most once per installation: the completion flag is stored
        even when the cloud is unreachable or individual uploads fail. A call
        made while a pass is running waits for that pass instead of starting
        another one.
        """
        if self._migration is None or self._migration.done():
            self._migration = asyncio.create_task(self._migrate(records), name="cloud-migration")
        return await asyncio.shield(self._migration)

    async def _migrate(self, records: List[PlateRecord]) -> List[PlateRecord]:
        if self.catalog.is_migration_completed():
            logger.debug("Cloud migration already completed")
            return list(records)

        if not await self.remote.check_availability():
            logger.info(f"Cloud unavailable, skipping migration: {self.remote.state.reason}")
            await self.writer.submit(mark_migration_completed)
            return list(records)

        updated: List[PlateRecord] = []
        migrated = 0
        for record in records:
            if not record.local_path or record.cloud_id:
                updated.append(record)
                continue

            data = await self._read_local(record.local_path, "Local", record.id)
            if data is None:
                logger.warning(f"Migration: local image missing for record {record.id}, skipping")
                updated.append(record)
                continue

            cloud_id = await self._upload(data, basename(record.local_path))
            if cloud_id is None:
                updated.append(record)
                continue

            stored = await self.writer.submit(set_cloud_id, record.id, cloud_id)
            if stored is None:
                # Silinen kaydın yüklenen kopyası artık sahipsiz
                self._spawn(self._delete_remote(cloud_id), f"cloud-delete-orphan-{record.id}")
                continue
            if stored.cloud_id != cloud_id:
                # Kayıt zaten başka bir bulut kopyasına bağlı
                self._spawn(self._delete_remote(cloud_id), f"cloud-delete-duplicate-{record.id}")
                updated.append(stored)
                continue
            updated.append(stored)
            migrated += 1

        await self.writer.submit(mark_migration_completed)
        logger.info(f"Cloud migration finished: {migrated} record(s) uploaded")
        return updated
