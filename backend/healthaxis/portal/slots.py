import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from .. import storage
from ..catalog import TIME_SLOTS
from ..logger import log_event
from .resources import daterange, new_id, parse_date, slot_start
from .users import get_user

ACTIVE_STATUSES = ("pending", "confirmed", "completed")


def _declared_slots(availability: Iterable[Dict], target_date: date) -> Optional[List[str]]:
    day = target_date.isoformat()
    for entry in availability or []:
        if entry.get("date") == day:
            return entry.get("slots") or []
    return None


def available_slots(availability: Iterable[Dict], booked: Iterable[str], target_date: date, now: datetime = None) -> List[str]:
    """
    Bookable slot labels for one doctor on ``target_date``, in TIME_SLOTS order.

    A slot is bookable when the doctor declared it for the date, no active
    appointment holds it and, on the current day, it starts strictly after
    ``now``.
    """
    declared = _declared_slots(availability, target_date)
    if not declared:
        return []
    now = now or datetime.now()
    taken = set(booked)
    declared = set(declared)

    free = []
    for label in TIME_SLOTS:
        if label not in declared or label in taken:
            continue
        if target_date == now.date() and slot_start(target_date, label) <= now:
            continue
        free.append(label)
    return free


def booked_slots(appointments: Iterable[Dict], doctor_id: str, target_date: date) -> List[str]:
    return [
        a.get("time")
        for a in appointments
        if a.get("doctor_id") == doctor_id
        and parse_date(a.get("date")) == target_date
        and a.get("status") in ACTIVE_STATUSES
    ]


def _get_doctor(doctor_id: str):
    user = get_user(doctor_id)
    if not user or user.get("role") != "doctor":
        return None
    return user


def get_doctor_availability(doctor_id: str, date_str: str, end_date_str: str = None, now: datetime = None) -> Dict:
    """
    Free slots for a doctor between date_str and end_date_str (inclusive).
    Dates are YYYY-MM-DD.
    """
    doc = _get_doctor(doctor_id)
    if not doc:
        return {"ok": False, "error": f"Doctor '{doctor_id}' not found", "not_found": True}

    start_date = parse_date(date_str)
    end_date = start_date if not end_date_str else parse_date(end_date_str)
    if start_date is None or end_date is None:
        return {"ok": False, "error": "Invalid date, expected YYYY-MM-DD"}
    if end_date < start_date:
        return {"ok": False, "error": "end date is before start date"}

    appointments = storage.get_collection(storage.APPOINTMENTS)
    days = []
    for single_date in daterange(start_date, end_date):
        taken = booked_slots(appointments, doc["id"], single_date)
        days.append({
            "date": single_date.isoformat(),
            "slots": available_slots(doc.get("available_times", []), taken, single_date, now=now),
        })

    result = {"ok": True, "doctor_id": doc["id"], "doctor": doc["name"], "days": days}
    if len(days) == 1:
        result["date"] = days[0]["date"]
        result["available_slots"] = days[0]["slots"]
    return result


def get_declared_availability(doctor_id: str, date_str: str) -> Dict:
    doc = _get_doctor(doctor_id)
    if not doc:
        return {"ok": False, "error": f"Doctor '{doctor_id}' not found", "not_found": True}
    target = parse_date(date_str)
    if target is None:
        return {"ok": False, "error": "Invalid date, expected YYYY-MM-DD"}
    declared = _declared_slots(doc.get("available_times", []), target) or []
    return {"ok": True, "date": target.isoformat(), "slots": declared, "all_slots": TIME_SLOTS}


def set_doctor_availability(doctor_id: str, date_str: str, slots: List[str]) -> Dict:
    doc = _get_doctor(doctor_id)
    if not doc:
        return {"ok": False, "error": f"Doctor '{doctor_id}' not found", "not_found": True}

    target = parse_date(date_str)
    if target is None:
        return {"ok": False, "error": "Invalid date, expected YYYY-MM-DD"}

    unknown = [s for s in slots if s not in TIME_SLOTS]
    if unknown:
        return {"ok": False, "error": f"Unknown time slots: {', '.join(unknown)}"}

    ordered = [s for s in TIME_SLOTS if s in set(slots)]
    day = target.isoformat()
    available_times = [a for a in doc.get("available_times", []) if a.get("date") != day]
    available_times.append({"date": day, "slots": ordered})
    available_times.sort(key=lambda a: a.get("date", ""))

    users = storage.get_collection(storage.USERS)
    for user in users:
        if user.get("id") == doc["id"]:
            user["available_times"] = available_times
    storage.save_collection(storage.USERS, users)

    log_event(logging.INFO, "Availability saved", {"doctor_id": doc["id"], "date": day, "slots": len(ordered)})
    return {"ok": True, "date": day, "slots": ordered}


def book_appointment(patient_id: str, doctor_id: str, date_str: str, time_label: str, appointment_type: str = "consultation", notes: str = None, now: datetime = None) -> Dict:
    """
    Append a pending appointment. The slot is re-checked against the
    current state right before the write.
    """
    doc = _get_doctor(doctor_id)
    if not doc:
        return {"ok": False, "error": f"Doctor '{doctor_id}' not found", "not_found": True}
    patient = get_user(patient_id)
    if not patient or patient.get("role") != "patient":
        return {"ok": False, "error": "Only patients can book appointments"}

    target = parse_date(date_str)
    if target is None:
        return {"ok": False, "error": "Invalid date, expected YYYY-MM-DD"}

    appointments = storage.get_collection(storage.APPOINTMENTS)
    free = available_slots(doc.get("available_times", []), booked_slots(appointments, doc["id"], target), target, now=now)
    if time_label not in free:
        log_event(logging.WARNING, "Booking rejected - slot unavailable", {"doctor_id": doc["id"], "date": target.isoformat(), "time": time_label})
        return {"ok": False, "error": "Slot not available", "conflict": True}

    appt = {
        "id": new_id(),
        "patient_id": patient["id"],
        "doctor_id": doc["id"],
        "date": target.isoformat(),
        "time": time_label,
        "status": "pending",
        "type": appointment_type or "consultation",
        "notes": notes,
        "prescription": None,
        "follow_up": None,
        "rating": None,
        "created_at": (now or datetime.now()).isoformat(),
    }
    appointments.append(appt)
    storage.save_collection(storage.APPOINTMENTS, appointments)

    log_event(logging.INFO, "Appointment booked", {"appointment_id": appt["id"], "doctor_id": doc["id"], "patient_id": patient["id"]})
    return {"ok": True, "appointment": appt}


def next_available(doctor_id: str, days: int = 7, now: datetime = None) -> Dict:
    """First free slots over the next ``days`` days, used by the assistant."""
    now = now or datetime.now()
    start = now.date()
    end = start + timedelta(days=max(days, 1) - 1)
    return get_doctor_availability(doctor_id, start.isoformat(), end.isoformat(), now=now)
