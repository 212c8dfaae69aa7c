import logging
from typing import Dict, List, Optional

from .. import storage
from ..logger import log_event
from ..schemas import MedicalRecordRequest, MedicationUpdate, PrescriptionRequest
from .resources import new_id, now_iso
from .users import get_user

RECORD_TITLES = {
    "blood_test": "Blood Test Results",
    "prescription": "Prescription",
    "diagnosis": "Medical Diagnosis",
}


def can_view_patient(viewer: Dict, patient_id: str) -> bool:
    """Patients see their own data, doctors see any patient's."""
    return viewer.get("role") == "doctor" or viewer.get("id") == patient_id


def _require_patient(patient_id: str) -> Optional[Dict]:
    patient = get_user(patient_id)
    if not patient or patient.get("role") != "patient":
        return None
    return patient


def list_records(patient_id: str, record_type: str = None) -> List[Dict]:
    records = [r for r in storage.get_collection(storage.MEDICAL_RECORDS) if r.get("patient_id") == patient_id]
    if record_type and record_type != "all":
        records = [r for r in records if r.get("type") == record_type]
    records = sorted(records, key=lambda r: r.get("date", ""), reverse=True)
    for record in records:
        record["title"] = RECORD_TITLES.get(record.get("type"), "Medical Record")
    return records


def add_record(doctor: Dict, payload: MedicalRecordRequest) -> Dict:
    if not _require_patient(payload.patient_id):
        return {"ok": False, "error": "Patient not found", "not_found": True}
    record = {
        "id": new_id(),
        "patient_id": payload.patient_id,
        "doctor_id": doctor["id"],
        "date": now_iso(),
        "type": payload.type.strip(),
        "details": payload.details,
    }
    storage.append_item(storage.MEDICAL_RECORDS, record)
    log_event(logging.INFO, "Medical record added", {"record_id": record["id"], "patient_id": payload.patient_id})
    return {"ok": True, "record": record}


def delete_record(doctor: Dict, record_id: str) -> Dict:
    record = storage.find_item(storage.MEDICAL_RECORDS, record_id)
    if not record:
        return {"ok": False, "error": "Record not found", "not_found": True}
    if record.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: record belongs to another doctor", "forbidden": True}
    storage.remove_item(storage.MEDICAL_RECORDS, record_id)
    log_event(logging.INFO, "Medical record deleted", {"record_id": record_id})
    return {"ok": True}


def prescribe(doctor: Dict, payload: PrescriptionRequest) -> Dict:
    """
    Store a prescription three ways, matching how the dashboards read it:
    a 'prescription' medical record, one medication entry per medicine and,
    when an appointment is given, on the appointment itself.
    """
    if not _require_patient(payload.patient_id):
        return {"ok": False, "error": "Patient not found", "not_found": True}

    appt = None
    if payload.appointment_id:
        appt = storage.find_item(storage.APPOINTMENTS, payload.appointment_id)
        if not appt:
            return {"ok": False, "error": "Appointment not found", "not_found": True}
        if appt.get("doctor_id") != doctor["id"] or appt.get("patient_id") != payload.patient_id:
            return {"ok": False, "error": "forbidden: appointment does not match doctor and patient", "forbidden": True}

    prescribed_at = now_iso()
    medicines = [m.model_dump() for m in payload.medicines]
    prescription = {
        "id": new_id(),
        "appointment_id": payload.appointment_id,
        "medicines": medicines,
        "instructions": payload.instructions,
        "duration": payload.duration,
        "notes": payload.notes,
        "prescribed_date": prescribed_at,
        "prescribed_by": doctor["id"],
    }

    record = {
        "id": new_id(),
        "patient_id": payload.patient_id,
        "doctor_id": doctor["id"],
        "date": prescribed_at,
        "type": "prescription",
        "details": {"prescription": prescription},
    }
    storage.append_item(storage.MEDICAL_RECORDS, record)

    medications = storage.get_collection(storage.MEDICATIONS)
    new_meds = []
    for medicine in medicines:
        new_meds.append({
            "id": new_id(),
            "patient_id": payload.patient_id,
            "doctor_id": doctor["id"],
            "name": medicine["name"],
            "dosage": medicine["dosage"],
            "frequency": medicine["frequency"],
            "duration": medicine["duration"],
            "timing": medicine["timing"],
            "prescribed_by": doctor["id"],
            "prescribed_date": prescribed_at,
            "instructions": payload.instructions,
            "notes": payload.notes,
        })
    storage.save_collection(storage.MEDICATIONS, medications + new_meds)

    if appt:
        appt["prescription"] = prescription
        storage.replace_item(storage.APPOINTMENTS, appt["id"], appt)

    log_event(logging.INFO, "Prescription saved", {"patient_id": payload.patient_id, "medicines": len(medicines)})
    return {"ok": True, "prescription": prescription, "record": record, "medications": new_meds}


def list_medications(patient_id: str) -> List[Dict]:
    return [m for m in storage.get_collection(storage.MEDICATIONS) if m.get("patient_id") == patient_id]


def update_medication(doctor: Dict, medication_id: str, payload: MedicationUpdate) -> Dict:
    med = storage.find_item(storage.MEDICATIONS, medication_id)
    if not med:
        return {"ok": False, "error": "Medication not found", "not_found": True}
    if med.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: medication prescribed by another doctor", "forbidden": True}
    med.update(payload.model_dump(exclude_none=True))
    storage.replace_item(storage.MEDICATIONS, medication_id, med)
    log_event(logging.INFO, "Medication updated", {"medication_id": medication_id})
    return {"ok": True, "medication": med}


def delete_medication(doctor: Dict, medication_id: str) -> Dict:
    med = storage.find_item(storage.MEDICATIONS, medication_id)
    if not med:
        return {"ok": False, "error": "Medication not found", "not_found": True}
    if med.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: medication prescribed by another doctor", "forbidden": True}
    storage.remove_item(storage.MEDICATIONS, medication_id)
    log_event(logging.INFO, "Medication deleted", {"medication_id": medication_id})
    return {"ok": True}


def prescribed_medicines(patient_id: str) -> List[Dict]:
    from_appointments = [
        m
        for a in storage.get_collection(storage.APPOINTMENTS)
        if a.get("patient_id") == patient_id and a.get("prescription")
        for m in a["prescription"].get("medicines", [])
    ]
    from_records = [
        m
        for r in storage.get_collection(storage.MEDICAL_RECORDS)
        if r.get("patient_id") == patient_id and r.get("type") == "prescription" and (r.get("details") or {}).get("prescription")
        for m in r["details"]["prescription"].get("medicines", [])
    ]

    unique = []
    seen = set()
    for medicine in from_appointments + from_records:
        key = (medicine.get("name"), medicine.get("dosage"))
        if key in seen:
            continue
        seen.add(key)
        unique.append(medicine)
    return unique


def follow_ups(patient_id: str) -> List[Dict]:
    return [
        a for a in storage.get_collection(storage.APPOINTMENTS)
        if a.get("patient_id") == patient_id and a.get("follow_up")
    ]
