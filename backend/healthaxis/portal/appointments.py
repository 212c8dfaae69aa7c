import logging
from datetime import date, timedelta
from typing import Dict, List

import requests

from .. import storage
from ..config import SLACK_WEBHOOK_URL
from ..logger import log_event
from ..schemas import FollowUpRequest, RatingRequest
from .resources import (
    new_id,
    now_iso,
    parse_date,
    send_calendar_event,
    send_email,
    slot_start,
    week_days,
)
from ..catalog import SLOT_MINUTES
from .users import get_user, update_user


def list_for_user(user: Dict) -> List[Dict]:
    field = "doctor_id" if user.get("role") == "doctor" else "patient_id"
    appts = [a for a in storage.get_collection(storage.APPOINTMENTS) if a.get(field) == user["id"]]
    return sorted(appts, key=lambda a: (a.get("date", ""), _slot_sort_key(a)))


def _slot_sort_key(appt: Dict):
    start = slot_start(date.min, appt.get("time") or "")
    return start.time().isoformat() if start else ""


def split_by_day(appointments: List[Dict], today: date = None) -> Dict[str, List[Dict]]:
    today = today or date.today()
    todays, upcoming, past = [], [], []
    for appt in appointments:
        day = parse_date(appt.get("date"))
        if day is None:
            continue
        if day == today:
            todays.append(appt)
        elif day > today:
            upcoming.append(appt)
        else:
            past.append(appt)
    return {"today": todays, "upcoming": upcoming, "past": past}


def week_view(doctor: Dict, anchor: date = None) -> List[Dict]:
    appts = list_for_user(doctor)
    days = []
    for day in week_days(anchor or date.today()):
        days.append({
            "date": day.isoformat(),
            "appointments": [a for a in appts if parse_date(a.get("date")) == day],
        })
    return days


def _load(appointment_id: str):
    return storage.find_item(storage.APPOINTMENTS, appointment_id)


def _save(appt: Dict):
    storage.replace_item(storage.APPOINTMENTS, appt["id"], appt)


def _is_party(appt: Dict, user: Dict) -> bool:
    return user["id"] in (appt.get("patient_id"), appt.get("doctor_id"))


def confirm(appointment_id: str, doctor: Dict) -> Dict:
    appt = _load(appointment_id)
    if not appt:
        return {"ok": False, "error": "Appointment not found", "not_found": True}
    if appt.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: not your appointment", "forbidden": True}
    if appt.get("status") != "pending":
        return {"ok": False, "error": f"Cannot confirm a {appt.get('status')} appointment"}

    appt["status"] = "confirmed"
    _save(appt)
    log_event(logging.INFO, "Appointment confirmed", {"appointment_id": appt["id"]})

    patient = get_user(appt["patient_id"]) or {}
    start_dt = slot_start(parse_date(appt["date"]), appt["time"])
    calendar_result = email_result = None
    if start_dt:
        end_dt = start_dt + timedelta(minutes=SLOT_MINUTES)
        calendar_result = send_calendar_event(doctor["name"], patient.get("name", "Patient"), start_dt.isoformat(), end_dt.isoformat())
        if patient.get("email"):
            email_result = send_email(
                patient["email"],
                f"Appointment with Dr. {doctor['name']} confirmed",
                f"Your appointment on {appt['date']} at {appt['time']} has been confirmed.",
            )
    return {"ok": True, "appointment": appt, "calendar": calendar_result, "email": email_result}


def complete(appointment_id: str, doctor: Dict) -> Dict:
    appt = _load(appointment_id)
    if not appt:
        return {"ok": False, "error": "Appointment not found", "not_found": True}
    if appt.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: not your appointment", "forbidden": True}
    if appt.get("status") != "confirmed":
        return {"ok": False, "error": "Only confirmed appointments can be completed"}
    appt["status"] = "completed"
    _save(appt)
    log_event(logging.INFO, "Appointment completed", {"appointment_id": appt["id"]})
    return {"ok": True, "appointment": appt}


def cancel(appointment_id: str, user: Dict) -> Dict:
    appt = _load(appointment_id)
    if not appt:
        return {"ok": False, "error": "Appointment not found", "not_found": True}
    if not _is_party(appt, user):
        return {"ok": False, "error": "forbidden: not your appointment", "forbidden": True}
    if appt.get("status") in ("cancelled", "completed"):
        return {"ok": False, "error": f"Appointment is already {appt['status']}"}
    appt["status"] = "cancelled"
    appt["cancelled_by"] = user["id"]
    _save(appt)
    log_event(logging.INFO, "Appointment cancelled", {"appointment_id": appt["id"], "by": user["id"]})
    return {"ok": True, "appointment": appt}


def add_follow_up(appointment_id: str, doctor: Dict, payload: FollowUpRequest) -> Dict:
    appt = _load(appointment_id)
    if not appt:
        return {"ok": False, "error": "Appointment not found", "not_found": True}
    if appt.get("doctor_id") != doctor["id"]:
        return {"ok": False, "error": "forbidden: not your appointment", "forbidden": True}
    if appt.get("status") != "confirmed":
        return {"ok": False, "error": "Follow-ups can only be scheduled for confirmed appointments"}
    if parse_date(payload.recommended_date) is None:
        return {"ok": False, "error": "Invalid recommended_date, expected YYYY-MM-DD"}

    follow_up = {
        "type": payload.type,
        "recommended_date": payload.recommended_date,
        "notes": payload.notes,
    }
    if payload.type == "referral":
        follow_up["referral_doctor"] = payload.referral_doctor
    if payload.type == "test":
        follow_up["test_type"] = payload.test_type

    appt["follow_up"] = follow_up
    _save(appt)
    log_event(logging.INFO, "Follow-up scheduled", {"appointment_id": appt["id"], "type": payload.type})
    return {"ok": True, "appointment": appt}


def rate(appointment_id: str, patient: Dict, payload: RatingRequest) -> Dict:
    appt = _load(appointment_id)
    if not appt:
        return {"ok": False, "error": "Appointment not found", "not_found": True}
    if appt.get("patient_id") != patient["id"]:
        return {"ok": False, "error": "forbidden: you can only rate your own appointments", "forbidden": True}
    if appt.get("status") != "completed":
        return {"ok": False, "error": "Only completed appointments can be rated"}
    if appt.get("rating"):
        return {"ok": False, "error": "Appointment already rated"}

    rating = {
        "id": new_id(),
        "appointment_id": appt["id"],
        "patient_id": patient["id"],
        "doctor_id": appt["doctor_id"],
        "rating": payload.rating,
        "feedback": payload.feedback,
        "date": now_iso(),
    }
    appt["rating"] = rating
    _save(appt)

    doctor = get_user(appt["doctor_id"])
    if doctor:
        ratings = list(doctor.get("ratings") or []) + [rating]
        doctor["ratings"] = ratings
        doctor["average_rating"] = round(sum(r["rating"] for r in ratings) / len(ratings), 2)
        update_user(doctor)

    log_event(logging.INFO, "Appointment rated", {"appointment_id": appt["id"], "rating": payload.rating})
    return {"ok": True, "rating": rating}


def get_doctor_stats(doctor: Dict, ref_date_str: str = None) -> Dict:
    if ref_date_str:
        ref_date = parse_date(ref_date_str)
        if ref_date is None:
            return {"ok": False, "error": "Invalid ref_date, expected YYYY-MM-DD"}
    else:
        ref_date = date.today()

    appts = [a for a in list_for_user(doctor) if a.get("status") != "cancelled"]

    def count_on(target_date):
        return sum(1 for a in appts if parse_date(a.get("date")) == target_date)

    breakdown = {}
    for appt in list_for_user(doctor):
        if parse_date(appt.get("date")) == ref_date:
            status = appt.get("status", "pending")
            breakdown[status] = breakdown.get(status, 0) + 1

    return {
        "ok": True,
        "doctor": doctor["name"],
        "ref_date": ref_date.isoformat(),
        "patients_yesterday": count_on(ref_date - timedelta(days=1)),
        "patients_today": count_on(ref_date),
        "patients_tomorrow": count_on(ref_date + timedelta(days=1)),
        "upcoming": sum(1 for a in appts if (parse_date(a.get("date")) or ref_date) > ref_date),
        "status_breakdown": breakdown,
    }


def _send_slack_message(text: str) -> dict:
    webhook = SLACK_WEBHOOK_URL
    if not webhook:
        return {"ok": False, "error": "no_slack_webhook"}
    payload = {"text": text}
    try:
        resp = requests.post(webhook, json=payload, timeout=5)
        return {"ok": resp.status_code in (200, 201, 204), "status_code": resp.status_code, "text": resp.text}
    except requests.RequestException as e:
        log_event(logging.ERROR, "Slack notification failed", {"error": str(e)})
        return {"ok": False, "error": str(e)}


def get_doctor_summary_report(doctor: Dict, ref_date_str: str = None, send_notification: bool = False) -> dict:
    stats = get_doctor_stats(doctor, ref_date_str)
    if not stats.get("ok"):
        return {"ok": False, "error": stats.get("error")}

    lines = []
    lines.append(f"Summary report for Dr. {stats['doctor']} - {stats['ref_date']}")
    lines.append(f"- Patients yesterday: {stats['patients_yesterday']}")
    lines.append(f"- Patients today: {stats['patients_today']}")
    lines.append(f"- Patients tomorrow: {stats['patients_tomorrow']}")
    lines.append("- Status breakdown:")
    if stats["status_breakdown"]:
        for status, count in sorted(stats["status_breakdown"].items(), key=lambda x: -x[1]):
            lines.append(f"  • {status.title()}: {count}")
    else:
        lines.append("  • No appointments on this date.")

    summary_text = "\n".join(lines)

    notification_result = None
    if send_notification:
        notification_result = _send_slack_message(summary_text)

    return {
        "ok": True,
        "doctor": stats["doctor"],
        "ref_date": stats["ref_date"],
        "summary_text": summary_text,
        "notification_sent": bool(notification_result and notification_result.get("ok")),
        "notification_result": notification_result,
        "raw_stats": stats,
    }
