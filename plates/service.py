# plates/service.py

import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError as SchemaError

from .catalog import CatalogStore
from .coordinator import PersistenceCoordinator
from .exceptions import RecordNotFound, ValidationError
from .local_cache import LocalBlobCache
from .mutations import (
    CatalogWriter,
    add_record,
    increment_view_count,
    remove_record,
    replace_cache_path,
    update_metadata,
)
from .optimizer import ImageOptimizer, validate_image
from .s3_utils import RemoteObjectStore
from .schemas import (
    MetadataUpdate,
    PlateCategory,
    PlateMetadata,
    PlateRecord,
    StorageUsage,
    ViewTransformState,
)

logger = logging.getLogger(__name__)


def _schema_message(error: SchemaError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(p) for p in item.get("loc", ())) or "value"
        parts.append(f"{field}: {item.get('msg')}")
    return "; ".join(parts)


class PlateService:
    """Everything the screens need: records, their images and view states."""

    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        cache: Optional[LocalBlobCache] = None,
        remote: Optional[RemoteObjectStore] = None,
        optimizer: Optional[ImageOptimizer] = None,
    ):
        self.catalog = catalog if catalog is not None else CatalogStore()
        self.cache = cache if cache is not None else LocalBlobCache()
        self.remote = remote if remote is not None else RemoteObjectStore()
        self.writer = CatalogWriter(self.catalog)
        self.coordinator = PersistenceCoordinator(
            cache=self.cache,
            remote=self.remote,
            optimizer=optimizer if optimizer is not None else ImageOptimizer(),
            writer=self.writer,
            on_cache_updated=self._store_cache_path,
        )

    async def start(self) -> None:
        await self.writer.start()

    async def stop(self) -> None:
        await self.coordinator.drain()
        await self.writer.stop()

    @property
    def cloud_available(self) -> bool:
        return self.coordinator.cloud_available

    async def _store_cache_path(self, record_id: str, cache_path: str) -> None:
        stale = await self.writer.submit(replace_cache_path, record_id, cache_path)
        if stale:
            await asyncio.to_thread(self.cache.delete, stale)
            logger.debug(f"Removed unreferenced cache file {stale}")

    # --- Kayıtlar ---

    def list_records(self) -> List[PlateRecord]:
        return self.catalog.list()

    def get_record(self, record_id: str) -> PlateRecord:
        record = self.catalog.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    async def create_record(
        self,
        image: bytes,
        title: str,
        plate_number: str,
        category: PlateCategory = PlateCategory.car,
        filename: Optional[str] = None,
    ) -> PlateRecord:
        """Save a new plate with its photo. Title, plate number and image are all required."""
        try:
            metadata = PlateMetadata(title=title, plate_number=plate_number, category=category)
        except SchemaError as e:
            raise ValidationError(_schema_message(e))
        validate_image(image, filename)

        record = await self.coordinator.save_new_image(image, metadata)
        return await self.writer.submit(add_record, record)

    async def update_metadata(
        self,
        record_id: str,
        title: Optional[str] = None,
        plate_number: Optional[str] = None,
        category: Optional[PlateCategory] = None,
    ) -> PlateRecord:
        """Edit title, plate number or category. The photo itself is never replaced."""
        try:
            changes = MetadataUpdate(title=title, plate_number=plate_number, category=category)
        except SchemaError as e:
            raise ValidationError(_schema_message(e))
        updated = await self.writer.submit(update_metadata, record_id, changes.model_dump(exclude_none=True))
        if updated is None:
            raise RecordNotFound(record_id)
        return updated

    async def delete_record(self, record_id: str) -> None:
        record = self.get_record(record_id)
        await self.coordinator.delete_image(record)
        await self.writer.submit(remove_record, record_id)
        logger.info(f"Deleted plate record {record_id}")

    async def record_view(self, record_id: str) -> PlateRecord:
        """Detail view opened: bump the view counter."""
        updated = await self.writer.submit(increment_view_count, record_id)
        if updated is None:
            raise RecordNotFound(record_id)
        return updated

    # --- Görseller ---

    async def load_image(self, record_id: str) -> Optional[bytes]:
        """Image bytes, or None when no tier has them (the caller may retry)."""
        record = self.catalog.get(record_id)
        if record is None:
            return None
        return await self.coordinator.load_image(record)

    async def migrate(self) -> List[PlateRecord]:
        return await self.coordinator.migrate_local_only_images(self.catalog.list())

    def storage_usage(self) -> StorageUsage:
        records = self.catalog.list()
        total = sum(self.cache.size(r.local_path) for r in records)
        return StorageUsage(count=len(records), total_bytes=total)

    # --- Görüntüleme durumu ---

    def get_view_state(self, record_id: str) -> Optional[ViewTransformState]:
        self.get_record(record_id)
        return self.catalog.get_view_state(record_id)

    async def set_view_state(
        self,
        record_id: str,
        state: ViewTransformState,
        viewport_width: Optional[float] = None,
        viewport_height: Optional[float] = None,
    ) -> ViewTransformState:
        self.get_record(record_id)
        clamped = state.clamped(viewport_width, viewport_height)
        return await self.writer.submit(CatalogStore.set_view_state, record_id, clamped)

    async def reset_view_state(self, record_id: str) -> ViewTransformState:
        return await self.set_view_state(record_id, ViewTransformState())


async def run_startup_migration(service: PlateService) -> None:
    """Start-up hook: migrate once, never let a failure stop the app."""
    try:
        await service.migrate()
    except Exception as e:
        logger.error(f"Cloud migration failed: {e}")
