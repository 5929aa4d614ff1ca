from datetime import datetime, timedelta, timezone

from vigitracker.memory_store import MemoryStore
from vigitracker.models import Geofence, Notification, UserProfile

from conftest import make_device


def test_add_get_and_delete_device(store):
    saved = store.add_device("u1", make_device("dev-1"))
    assert saved.user_id == "u1"
    assert saved.last_seen is not None
    assert store.get_device("u1", "dev-1").name == "Cargo Truck 1"

    assert store.delete_device("u1", "dev-1") is True
    assert store.get_device("u1", "dev-1") is None
    assert store.list_devices("u1") == []
    assert store.delete_device("u1", "dev-1") is False


def test_users_are_isolated(store):
    store.add_device("u1", make_device("dev-1"))
    assert store.list_devices("u2") == []
    assert store.get_device("u2", "dev-1") is None


def test_returned_records_are_copies(store):
    store.add_device("u1", make_device("dev-1"))
    device = store.get_device("u1", "dev-1")
    device.name = "Changed"
    assert store.get_device("u1", "dev-1").name == "Cargo Truck 1"


def test_deleting_device_drops_its_geofences(store):
    store.add_device("u1", make_device("dev-1"))
    store.add_device("u1", make_device("dev-2", name="Van"))
    store.add_geofence("u1", Geofence(name="Depot", latitude=1, longitude=2, device_id="dev-1"))
    kept = store.add_geofence("u1", Geofence(name="Yard", latitude=1, longitude=2, device_id="dev-2"))

    store.delete_device("u1", "dev-1")

    assert [g.id for g in store.list_geofences("u1")] == [kept.id]


def test_geofence_ids_and_delete(store):
    store.add_device("u1", make_device("dev-1"))
    fence = store.add_geofence("u1", Geofence(name="Depot", latitude=1, longitude=2, device_id="dev-1"))
    assert fence.id
    assert fence.created_at is not None
    assert store.delete_geofence("u1", "dev-1", fence.id) is True
    assert store.delete_geofence("u1", "dev-1", fence.id) is False


def test_notifications_newest_first_with_limit(store):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(5):
        store.add_notification("u1", Notification(
            type="online", title=f"n{i}", description="", user_id="u1",
            timestamp=base + timedelta(minutes=i),
        ))
    titles = [n.title for n in store.list_notifications("u1", limit=3)]
    assert titles == ["n4", "n3", "n2"]


def test_save_profile_merges(store):
    store.save_profile("u1", UserProfile(name="Ada", email="ada@example.com"))
    store.save_profile("u1", UserProfile(name="Ada L."))
    assert store.get_profile("u1") == UserProfile(name="Ada L.", email="ada@example.com")
    assert store.get_profile("u2") is None


def test_seed_demo_devices():
    demo = MemoryStore(seed_demo=True)
    ids = sorted(d.id for d in demo.list_devices("anyone"))
    assert ids == ["dev-001", "dev-002", "dev-003", "dev-004"]
