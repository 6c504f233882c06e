# plates/mutations.py

import asyncio
import logging
from typing import Any, Callable, Optional

from .catalog import CatalogStore
from .schemas import PlateRecord

logger = logging.getLogger(__name__)


class CatalogWriter:
    """
    Single consumer that owns every catalog mutation.

    Background tasks (uploads, cloud fetches, migration) never touch the
    catalog directly; they ``submit`` a mutation and await its result. The
    queue runs one mutation at a time, in submission order.
    """

    def __init__(self, catalog: CatalogStore):
        self.catalog = catalog
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run(), name="catalog-writer")

    async def stop(self) -> None:
        """Drain pending mutations, then stop the consumer."""
        if not self.running:
            return
        await self._queue.put(None)
        await self._task
        self._task = None
        self._queue = None

    async def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``fn(catalog, *args, **kwargs)`` on the writer and return its result."""
        if not self.running:
            await self.start()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((fn, args, kwargs, future))
        return await future

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            fn, args, kwargs, future = item
            if future.cancelled():
                continue
            try:
                result = await asyncio.to_thread(fn, self.catalog, *args, **kwargs)
            except Exception as e:
                logger.error(f"Catalog mutation {getattr(fn, '__name__', fn)} failed: {e}")
                if not future.cancelled():
                    future.set_exception(e)
            else:
                if not future.cancelled():
                    future.set_result(result)


# Mutations below always re-read the current record so a late write-back
# never clobbers a concurrent edit.

def add_record(catalog: CatalogStore, record: PlateRecord) -> PlateRecord:
    return catalog.upsert(record)


def remove_record(catalog: CatalogStore, record_id: str) -> bool:
    catalog.delete_view_state(record_id)
    return catalog.delete(record_id)


def update_metadata(catalog: CatalogStore, record_id: str, changes: dict) -> Optional[PlateRecord]:
    current = catalog.get(record_id)
    if current is None:
        return None
    allowed = {k: v for k, v in changes.items() if k in ("title", "plate_number", "category") and v is not None}
    return catalog.upsert(current.model_copy(update=allowed))


def increment_view_count(catalog: CatalogStore, record_id: str) -> Optional[PlateRecord]:
    current = catalog.get(record_id)
    if current is None:
        return None
    return catalog.upsert(current.model_copy(update={"view_count": current.view_count + 1}))


def replace_cache_path(catalog: CatalogStore, record_id: str, cache_path: str) -> Optional[str]:
    """Point the record at a new cache file and return the file nothing references any more."""
    current = catalog.get(record_id)
    if current is None:
        logger.debug(f"Dropping cache pointer for deleted record {record_id}: {cache_path}")
        return cache_path
    catalog.upsert(current.model_copy(update={"cache_path": cache_path}))
    if current.cache_path and current.cache_path != cache_path:
        return current.cache_path
    return None


def set_cloud_id(catalog: CatalogStore, record_id: str, cloud_id: str) -> Optional[PlateRecord]:
    """Store the cloud id unless the record already has one; returns the stored record."""
    current = catalog.get(record_id)
    if current is None:
        logger.warning(f"Record {record_id} deleted before its cloud id {cloud_id} could be stored")
        return None
    if current.cloud_id and current.cloud_id != cloud_id:
        logger.warning(f"Record {record_id} already has cloud id {current.cloud_id}, keeping it")
        return current
    return catalog.upsert(current.model_copy(update={"cloud_id": cloud_id}))


def mark_migration_completed(catalog: CatalogStore) -> None:
    catalog.set_migration_completed(True)
