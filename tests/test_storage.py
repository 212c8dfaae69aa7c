from healthaxis import storage
from healthaxis.db import SessionLocal
from healthaxis.logger import get_logs
from healthaxis.models import StorageEntry


def _write_raw(key, value):
    db = SessionLocal()
    try:
        db.add(StorageEntry(key=key, value=value))
        db.commit()
    finally:
        db.close()


def test_missing_key_returns_default():
    assert storage.read_key("nothing") is None
    assert storage.read_key("nothing", []) == []
    assert storage.get_collection(storage.APPOINTMENTS) == []


def test_write_then_overwrite():
    storage.write_key("insurance_u1", {"provider": "Acme"})
    storage.write_key("insurance_u1", {"provider": "Other"})
    assert storage.read_key("insurance_u1") == {"provider": "Other"}


def test_malformed_json_falls_back_to_empty():
    _write_raw(storage.APPOINTMENTS, "{not json")
    assert storage.get_collection(storage.APPOINTMENTS) == []
    assert any(e["message"].startswith("Malformed JSON") for e in get_logs())


def test_non_list_collection_is_treated_as_empty():
    storage.write_key(storage.USERS, {"id": "x"})
    assert storage.get_collection(storage.USERS) == []


def test_collection_helpers():
    storage.append_item(storage.MESSAGES, {"id": "a", "content": "hi"})
    storage.append_item(storage.MESSAGES, {"id": "b", "content": "there"})

    assert storage.find_item(storage.MESSAGES, "b")["content"] == "there"
    assert storage.replace_item(storage.MESSAGES, "a", {"id": "a", "content": "hello"})
    assert storage.find_item(storage.MESSAGES, "a")["content"] == "hello"
    assert not storage.replace_item(storage.MESSAGES, "zzz", {"id": "zzz"})

    assert storage.remove_item(storage.MESSAGES, "a")
    assert not storage.remove_item(storage.MESSAGES, "a")
    assert [m["id"] for m in storage.get_collection(storage.MESSAGES)] == ["b"]


def test_user_key():
    assert storage.user_key(storage.HEALTH_METRICS, "42") == "healthMetrics_42"
