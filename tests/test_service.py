import asyncio

import pytest

from plates.exceptions import InvalidImageError, RecordNotFound, ValidationError
from plates.schemas import Offset, PlateCategory, ViewTransformState
from conftest import make_image_bytes


def _create(service, **kwargs):
    values = {"title": "Dad's car", "plate_number": "34 ABC 123"}
    values.update(kwargs)
    return asyncio.run(service.create_record(make_image_bytes(), **values))


def test_text_fields_are_stripped(service):
    record = _create(service, title="  Dad's car ", plate_number=" 06 XYZ 42")
    assert record.title == "Dad's car"
    assert record.plate_number == "06 XYZ 42"


@pytest.mark.parametrize("plate_number", ["", "   ", None])
def test_create_requires_plate_number(service, s3_client, plate_number):
    with pytest.raises(ValidationError):
        _create(service, plate_number=plate_number)
    assert service.list_records() == []
    assert s3_client.calls["put_object"] == 0


def test_view_state_rejects_non_finite_values():
    from pydantic import ValidationError as SchemaError

    with pytest.raises(SchemaError):
        ViewTransformState(scale=float("nan"))
    with pytest.raises(SchemaError):
        ViewTransformState(offset=Offset(x=float("inf"), y=0))


def test_create_requires_title_and_image(service):
    with pytest.raises(ValidationError):
        _create(service, title="   ")
    with pytest.raises(InvalidImageError):
        asyncio.run(service.create_record(b"", title="Dad's car", plate_number="34 ABC 123"))
    assert service.list_records() == []


def test_update_metadata_never_touches_storage_pointers(service):
    record = _create(service)
    updated = asyncio.run(
        service.update_metadata(record.id, title="Mum's bike", category=PlateCategory.motorcycle)
    )
    assert updated.title == "Mum's bike"
    assert updated.plate_number == record.plate_number
    assert updated.category is PlateCategory.motorcycle
    assert updated.local_path == record.local_path
    assert updated.cloud_id == record.cloud_id
    assert service.get_record(record.id) == updated


def test_update_metadata_rejects_blank_fields_and_unknown_records(service):
    record = _create(service)
    with pytest.raises(ValidationError):
        asyncio.run(service.update_metadata(record.id, plate_number="  "))
    with pytest.raises(RecordNotFound):
        asyncio.run(service.update_metadata("missing", title="x"))


def test_record_view_increments_counter(service):
    record = _create(service)

    async def open_three_times():
        for _ in range(3):
            await service.record_view(record.id)

    asyncio.run(open_three_times())
    assert service.get_record(record.id).view_count == 3


def test_view_state_is_clamped_and_reset(service):
    record = _create(service)
    assert service.get_view_state(record.id) is None

    saved = asyncio.run(
        service.set_view_state(
            record.id,
            ViewTransformState(scale=20, offset=Offset(x=10_000, y=-10_000)),
            viewport_width=400,
            viewport_height=200,
        )
    )
    assert saved.scale == 10.0
    assert saved.offset == Offset(x=1800.0, y=-900.0)
    assert service.get_view_state(record.id) == saved

    reset = asyncio.run(service.reset_view_state(record.id))
    assert reset == ViewTransformState()


def test_unzoomed_image_cannot_be_panned():
    state = ViewTransformState(scale=0.1, offset=Offset(x=50, y=50)).clamped(400, 200)
    assert state.scale == 0.5
    assert state.offset == Offset(x=0.0, y=0.0)


def test_offset_kept_without_viewport():
    state = ViewTransformState(scale=2, offset=Offset(x=500, y=-20)).clamped()
    assert state.offset == Offset(x=500, y=-20)


def test_delete_removes_view_state(service):
    record = _create(service)

    async def scenario():
        await service.set_view_state(record.id, ViewTransformState(scale=2))
        await service.delete_record(record.id)
        await service.coordinator.drain()

    asyncio.run(scenario())
    assert service.catalog.get_view_state(record.id) is None
    with pytest.raises(RecordNotFound):
        service.get_record(record.id)
    with pytest.raises(RecordNotFound):
        asyncio.run(service.delete_record(record.id))


def test_storage_usage_counts_local_bytes(service):
    first = _create(service)
    second = _create(service, title="Scooter")
    usage = service.storage_usage()
    assert usage.count == 2
    assert usage.total_bytes == service.cache.size(first.local_path) + service.cache.size(second.local_path)
    assert usage.label.endswith(" MB")
