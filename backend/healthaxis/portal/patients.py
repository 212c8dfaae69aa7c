import logging
from typing import Dict, List, Optional

from .. import storage
from ..logger import log_event
from ..schemas import FamilyMemberRequest, HealthMetricRequest, InsuranceRequest
from .appointments import list_for_user
from .records import list_records
from .resources import new_id, now_iso
from .users import get_user, list_users, public_user


def patients_for_doctor(doctor: Dict, query: str = None) -> List[Dict]:
    patient_ids = {a.get("patient_id") for a in list_for_user(doctor)}
    patients = [u for u in list_users("patient") if u.get("id") in patient_ids]
    if query:
        q = query.lower()
        patients = [p for p in patients if q in p.get("name", "").lower()]
    return [public_user(p) for p in patients]


def patient_overview(viewer: Dict, patient_id: str) -> Optional[Dict]:
    patient = get_user(patient_id)
    if not patient or patient.get("role") != "patient":
        return None
    overview = {
        "patient": public_user(patient),
        "appointments": list_for_user(patient),
    }
    if viewer.get("role") == "doctor":
        overview["medical_history"] = list_records(patient_id)
    return overview


# Per-user keyed entries

def get_health_metrics(user_id: str) -> Optional[Dict]:
    return storage.read_key(storage.user_key(storage.HEALTH_METRICS, user_id))


def add_health_metric(user_id: str, payload: HealthMetricRequest) -> Dict:
    key = storage.user_key(storage.HEALTH_METRICS, user_id)
    current = storage.read_key(key) or {}
    reading = payload.model_dump()
    recorded_at = now_iso()
    metrics = {
        **reading,
        "last_updated": recorded_at,
        "history": list(current.get("history") or []) + [{"date": recorded_at, **reading}],
    }
    storage.write_key(key, metrics)
    log_event(logging.INFO, "Health metrics added", {"user_id": user_id})
    return metrics


def list_family(user_id: str) -> List[Dict]:
    members = storage.read_key(storage.user_key(storage.FAMILY, user_id), [])
    return members if isinstance(members, list) else []


def add_family_member(user_id: str, payload: FamilyMemberRequest) -> Dict:
    stamp = now_iso()
    member = {"id": new_id(), **payload.model_dump(), "created_at": stamp, "updated_at": stamp}
    storage.save_collection(storage.user_key(storage.FAMILY, user_id), list_family(user_id) + [member])
    return member


def update_family_member(user_id: str, member_id: str, payload: FamilyMemberRequest) -> Optional[Dict]:
    members = list_family(user_id)
    for member in members:
        if member.get("id") == member_id:
            member.update(payload.model_dump())
            member["updated_at"] = now_iso()
            storage.save_collection(storage.user_key(storage.FAMILY, user_id), members)
            return member
    return None


def delete_family_member(user_id: str, member_id: str) -> bool:
    return storage.remove_item(storage.user_key(storage.FAMILY, user_id), member_id)


def get_insurance(user_id: str) -> Optional[Dict]:
    return storage.read_key(storage.user_key(storage.INSURANCE, user_id))


def update_insurance(user_id: str, payload: InsuranceRequest) -> Dict:
    key = storage.user_key(storage.INSURANCE, user_id)
    current = storage.read_key(key) or {}
    insurance = {**payload.model_dump(), "documents": current.get("documents", [])}
    storage.write_key(key, insurance)
    log_event(logging.INFO, "Insurance updated", {"user_id": user_id})
    return insurance
