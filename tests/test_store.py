import sqlite3

import pytest

from lenswatch.config import CatalogSettings
from lenswatch.data.storage import Database, InterventionBackend
from lenswatch.data.store import InterventionStore, StoreStatus, parse_new_intervention
from lenswatch.domain.models import NewIntervention
from lenswatch.exceptions import NotFoundError, PersistenceError, ValidationError


def _new(machine="Mach01", day="2024-01-01", type="Nettoyage", **extra):
    return NewIntervention.model_validate(
        {"machine": machine, "date": day, "intervenant": "Gérard", "type": type, **extra}
    )


def test_new_store_is_ready_and_empty(store):
    assert store.status is StoreStatus.READY
    assert store.snapshot() == ()


def test_add_assigns_unique_id_and_keeps_date_order(store):
    first = store.add(_new(day="2024-01-01"))
    second = store.add(_new(day="2024-03-01"))
    third = store.add(_new(day="2024-02-01"))

    assert len({first.id, second.id, third.id}) == 3
    assert [r.id for r in store.snapshot()] == [second.id, third.id, first.id]


def test_add_accepts_wire_dict(store):
    record = store.add(
        {"machine": "Mach02", "date": "2024-05-02", "intervenant": "Emeric", "type": "Remplacement", "compteurLaser": 42}
    )

    assert record.compteur_laser == "42"
    assert store.get(record.id) == record


def test_add_rejects_missing_required_fields(store):
    with pytest.raises(ValidationError):
        store.add({"machine": "Mach01", "date": "2024-01-01", "type": "Nettoyage"})
    with pytest.raises(ValidationError):
        store.add({"machine": "Mach01", "date": "2024-01-01", "intervenant": "Gérard", "type": "Graissage"})
    assert store.snapshot() == ()


def test_records_survive_a_new_store(db, store):
    added = store.add(_new(commentaire="Buse changée", laserOn="1200"))

    reloaded = InterventionStore(db)

    assert reloaded.snapshot() == (added,)


def test_delete_removes_record_everywhere(db, store):
    keep = store.add(_new(day="2024-01-01"))
    gone = store.add(_new(day="2024-01-02"))

    store.delete(gone.id)

    assert [r.id for r in store.snapshot()] == [keep.id]
    assert [r.id for r in InterventionStore(db).snapshot()] == [keep.id]


def test_delete_unknown_id_raises_not_found(store):
    store.add(_new())
    with pytest.raises(NotFoundError):
        store.delete("does-not-exist")
    assert len(store.snapshot()) == 1


def test_delete_all_empties_collection(db, store):
    store.bulk_import([_new(day=f"2024-01-0{i}") for i in range(1, 4)])

    assert store.delete_all() == 3
    assert store.snapshot() == ()
    assert InterventionStore(db).snapshot() == ()


def test_generated_id_collision_is_retried(db):
    ids = iter(["a", "a", "b", "b", "c"])
    store = InterventionStore(db, id_factory=lambda: next(ids))

    assert store.add(_new()).id == "a"
    assert store.add(_new()).id == "b"
    assert store.add(_new()).id == "c"


def test_bulk_import_appends_without_dedup(store):
    existing = store.add(_new(day="2024-01-05"))
    imported = store.bulk_import([existing.to_wire(), _new(day="2024-01-06").to_wire()])

    assert len(imported) == 2
    assert all(r.id != existing.id for r in imported)
    assert len(store.snapshot()) == 3


def test_bulk_import_rejects_everything_when_one_entry_is_invalid(store):
    store.add(_new())
    items = [
        _new(day="2024-02-01").to_wire(),
        {"machine": "Mach02", "date": "2024-02-02", "type": "Nettoyage"},
        "not an object",
    ]

    with pytest.raises(ValidationError) as excinfo:
        store.bulk_import(items)

    assert any(e.startswith("#1") for e in excinfo.value.errors)
    assert any(e.startswith("#2") for e in excinfo.value.errors)
    assert len(store.snapshot()) == 1


def test_bulk_import_of_empty_list_is_a_noop(store):
    assert store.bulk_import([]) == []
    assert store.snapshot() == ()


def test_equal_dates_show_latest_stored_first_and_survive_reload(db, store):
    a = store.add(_new(machine="Mach01", day="2024-04-01"))
    b = store.add(_new(machine="Mach02", day="2024-04-01"))
    c, d = store.bulk_import([_new(machine="Adige", day="2024-04-01"), _new(machine="Mazak", day="2024-04-01")])

    expected = [d.id, c.id, b.id, a.id]
    assert [r.id for r in store.snapshot()] == expected
    assert [r.id for r in InterventionStore(db).snapshot()] == expected


def test_parse_new_intervention_strips_id_from_stored_record(make_intervention):
    record = make_intervention()
    parsed = parse_new_intervention(record)

    assert isinstance(parsed, NewIntervention)
    assert not hasattr(parsed, "id")


class FailingWrites(Database):
    def add_one(self, record):
        raise PersistenceError("disk full")


def test_failed_add_leaves_memory_unchanged(tmp_path):
    store = InterventionStore(FailingWrites(tmp_path / "db.sqlite"))

    with pytest.raises(PersistenceError):
        store.add(_new())

    assert store.snapshot() == ()


class ExplodingDatabase(Database):
    @staticmethod
    def _insert(cur, records):
        Database._insert(cur, records)
        raise sqlite3.OperationalError("simulated crash after insert")


def test_failed_batch_is_rolled_back(tmp_path):
    path = tmp_path / "db.sqlite"
    store = InterventionStore(ExplodingDatabase(path))

    with pytest.raises(PersistenceError):
        store.bulk_import([_new(), _new(day="2024-01-02")])

    assert store.snapshot() == ()
    assert Database(path).list_all() == []


class UnreadableDatabase(Database):
    def list_all(self):
        raise PersistenceError("database is locked")


def test_unreadable_backend_marks_store_unavailable(tmp_path):
    store = InterventionStore(UnreadableDatabase(tmp_path / "db.sqlite"))

    assert store.status is StoreStatus.UNAVAILABLE
    assert "locked" in store.error
    with pytest.raises(PersistenceError):
        store.snapshot()
    with pytest.raises(PersistenceError):
        store.add(_new())


class FakeLiveBackend(InterventionBackend):
    """Accepts writes and only reports them when `push` is called, like a remote listener."""

    live = True

    def __init__(self):
        self.docs = {}
        self.on_change = None
        self.on_error = None
        self.unsubscribed = False

    def subscribe(self, on_change, on_error):
        self.on_change = on_change
        self.on_error = on_error
        return self._unsubscribe

    def _unsubscribe(self):
        self.unsubscribed = True

    def push(self):
        self.on_change(list(self.docs.values()))

    def list_all(self):
        return list(self.docs.values())

    def add_one(self, record):
        self.docs[record.id] = record

    def delete_one(self, intervention_id):
        return self.docs.pop(intervention_id, None) is not None

    def clear_all(self):
        count = len(self.docs)
        self.docs.clear()
        return count

    def batch_add(self, records):
        for record in records:
            self.docs[record.id] = record


def test_live_store_waits_for_first_snapshot():
    backend = FakeLiveBackend()
    store = InterventionStore(backend, ready_timeout=0.05)

    assert store.status is StoreStatus.LOADING
    with pytest.raises(PersistenceError):
        store.snapshot()
    assert store.status is StoreStatus.UNAVAILABLE

    backend.push()
    assert store.status is StoreStatus.READY
    assert store.snapshot() == ()


def test_live_store_reflects_writes_through_notifications():
    backend = FakeLiveBackend()
    store = InterventionStore(backend)
    backend.push()

    record = store.add(_new())
    assert store.snapshot() == ()

    backend.push()
    assert store.snapshot() == (record,)

    store.delete(record.id)
    backend.push()
    assert store.snapshot() == ()


def test_live_store_error_then_recovery():
    backend = FakeLiveBackend()
    store = InterventionStore(backend)
    backend.push()

    backend.on_error(RuntimeError("permission denied"))
    assert store.status is StoreStatus.UNAVAILABLE
    with pytest.raises(PersistenceError, match="permission denied"):
        store.snapshot()

    backend.push()
    assert store.status is StoreStatus.READY


def test_close_unsubscribes_live_backend():
    backend = FakeLiveBackend()
    store = InterventionStore(backend)

    store.close()
    store.close()

    assert backend.unsubscribed is True


def test_missing_lens_defaults_from_catalog():
    catalog = CatalogSettings()

    assert _new(machine="Mazak").with_default_lens(catalog.lens_for).lentille == "Lenti068"
    assert _new(machine="Adige").with_default_lens(catalog.lens_for).lentille == ""
    assert _new(machine="Prototype").with_default_lens(catalog.lens_for).lentille == ""
    assert _new(machine="Mach01", lentille="").with_default_lens(catalog.lens_for).lentille == ""
