"""
Key-value store backing every portal collection.

Values are JSON documents addressed by a string key ("users",
"appointments", "healthMetrics_<user id>", ...). Collections are always read
whole and written back whole, so concurrent writers to the same key follow
last-writer-wins.
"""
import json
import logging
from typing import Any, Dict, List

from .db import SessionLocal
from .logger import log_event
from .models import StorageEntry

USERS = "users"
APPOINTMENTS = "appointments"
MEDICAL_RECORDS = "medicalRecords"
MEDICATIONS = "medications"
MESSAGES = "messages"

HEALTH_METRICS = "healthMetrics"
FAMILY = "family"
INSURANCE = "insurance"


def user_key(prefix: str, user_id: str) -> str:
    return f"{prefix}_{user_id}"


def read_key(key: str, default: Any = None) -> Any:
    db = SessionLocal()
    try:
        entry = db.get(StorageEntry, key)
        if entry is None:
            return default
        try:
            return json.loads(entry.value)
        except ValueError:
            log_event(logging.WARNING, "Malformed JSON in storage, using default", {"key": key})
            return default
    finally:
        db.close()


def write_key(key: str, value: Any) -> None:
    payload = json.dumps(value)
    db = SessionLocal()
    try:
        entry = db.get(StorageEntry, key)
        if entry is None:
            db.add(StorageEntry(key=key, value=payload))
        else:
            entry.value = payload
        db.commit()
    finally:
        db.close()


def get_collection(key: str) -> List[Dict[str, Any]]:
    items = read_key(key, [])
    if not isinstance(items, list):
        log_event(logging.WARNING, "Non-list value stored for collection, using empty", {"key": key})
        return []
    return items


def save_collection(key: str, items: List[Dict[str, Any]]) -> None:
    write_key(key, list(items))


def append_item(key: str, item: Dict[str, Any]) -> Dict[str, Any]:
    items = get_collection(key)
    items.append(item)
    save_collection(key, items)
    return item


def find_item(key: str, item_id: str):
    for item in get_collection(key):
        if item.get("id") == item_id:
            return item
    return None


def replace_item(key: str, item_id: str, updated: Dict[str, Any]) -> bool:
    items = get_collection(key)
    found = False
    for idx, item in enumerate(items):
        if item.get("id") == item_id:
            items[idx] = updated
            found = True
    if found:
        save_collection(key, items)
    return found


def remove_item(key: str, item_id: str) -> bool:
    items = get_collection(key)
    kept = [i for i in items if i.get("id") != item_id]
    if len(kept) == len(items):
        return False
    save_collection(key, kept)
    return True
