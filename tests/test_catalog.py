from plates.catalog import RECORDS_KEY, CatalogStore
from plates.schemas import Offset, PlateCategory, PlateRecord, ViewTransformState


def _record(**kwargs) -> PlateRecord:
    values = {"title": "Dad's car", "plate_number": "34 ABC 123"}
    values.update(kwargs)
    return PlateRecord(**values)


def test_upsert_get_list_delete(catalog):
    first = catalog.upsert(_record())
    second = catalog.upsert(_record(title="Scooter", category=PlateCategory.motorcycle))

    assert [r.id for r in catalog.list()] == [first.id, second.id]
    assert catalog.get(second.id).category is PlateCategory.motorcycle

    catalog.upsert(first.model_copy(update={"title": "Renamed"}))
    assert catalog.get(first.id).title == "Renamed"
    assert len(catalog.list()) == 2

    assert catalog.delete(first.id) is True
    assert catalog.delete(first.id) is False
    assert catalog.get(first.id) is None


def test_records_survive_a_new_store_instance(catalog):
    record = catalog.upsert(_record(local_path="/tmp/a.jpg", cloud_id="plates/a.jpg"))
    reopened = CatalogStore(catalog.kv)
    assert reopened.get(record.id) == record


def test_view_states_are_keyed_by_record(catalog):
    record = catalog.upsert(_record())
    assert catalog.get_view_state(record.id) is None

    state = ViewTransformState(scale=2.5, offset=Offset(x=10, y=-4))
    catalog.set_view_state(record.id, state)
    assert catalog.get_view_state(record.id) == state

    assert catalog.delete_view_state(record.id) is True
    assert catalog.get_view_state(record.id) is None
    assert catalog.delete_view_state(record.id) is False


def test_migration_flag_defaults_to_false(catalog):
    assert catalog.is_migration_completed() is False
    catalog.set_migration_completed()
    assert catalog.is_migration_completed() is True


def test_corrupt_entries_are_treated_as_empty(catalog):
    catalog.kv.set(RECORDS_KEY, {"not": "a list"})
    assert catalog.list() == []

    good = _record()
    catalog.kv.set(RECORDS_KEY, [{"title": "missing plate number"}, good.model_dump(mode="json")])
    assert [r.id for r in catalog.list()] == [good.id]
