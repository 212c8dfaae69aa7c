from contextlib import asynccontextmanager
from datetime import date
from typing import Optional
import os
import uuid

from fastapi import Depends, FastAPI, File, Header, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from . import ai, catalog, config
from .init_db import init
from .logger import clear_logs, get_logs
from .portal import appointments, messages, patients, records, slots, uploads
from .portal.resources import parse_date
from .portal.users import authenticate, get_user, list_doctors, public_user, register_user
from .schemas import (
    AIRequest,
    AvailabilityUpdate,
    BookingRequest,
    FamilyMemberRequest,
    FollowUpRequest,
    HealthMetricRequest,
    ImageAnalysisRequest,
    InsuranceRequest,
    LoginRequest,
    MedicalRecordRequest,
    MedicationUpdate,
    MessageRequest,
    PrescriptionRequest,
    RatingRequest,
    RegisterRequest,
    ReportRequest,
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init()
    yield


app = FastAPI(title="HealthAxis API", lifespan=lifespan)

TOKENS = {}

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount(uploads.UPLOAD_URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


def _check(res: dict) -> dict:
    """Turn an {"ok": False, ...} service result into the matching HTTP error."""
    if res.get("ok"):
        return res
    error = res.get("error") or "Request failed"
    if res.get("forbidden"):
        raise HTTPException(status_code=403, detail=error)
    if res.get("conflict"):
        raise HTTPException(status_code=409, detail=error)
    if res.get("not_found"):
        raise HTTPException(status_code=404, detail=error)
    raise HTTPException(status_code=400, detail=error)


def get_token_info(x_auth: Optional[str] = Header(None)):
    if not x_auth:
        raise HTTPException(status_code=401, detail="X-AUTH header required")
    info = TOKENS.get(x_auth)
    if not info:
        raise HTTPException(status_code=401, detail="Invalid token")
    return {**info, "token": x_auth}


def get_current_user(token_info: dict = Depends(get_token_info)) -> dict:
    user = get_user(token_info["user_id"])
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")
    return user


def require_role(role: str):
    def role_dependency(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") != role:
            raise HTTPException(status_code=403, detail=f"Forbidden: requires {role} role")
        return user
    return role_dependency


def _require_patient_access(viewer: dict, patient_id: str):
    if not records.can_view_patient(viewer, patient_id):
        raise HTTPException(status_code=403, detail="Forbidden: cannot view another patient's data")


@app.get("/health")
def health():
    return {"ok": True}


# Auth
class LoginResponse(BaseModel):
    token: str
    role: str
    user: dict


@app.post("/auth/register", status_code=201)
def auth_register(payload: RegisterRequest):
    return _check(register_user(payload))


@app.post("/auth/login", response_model=LoginResponse)
def auth_login(payload: LoginRequest):
    user = authenticate(payload.email, payload.password, payload.role)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = str(uuid.uuid4())
    TOKENS[token] = {"user_id": user["id"], "email": user["email"], "role": user["role"]}
    return {"token": token, "role": user["role"], "user": public_user(user)}


@app.post("/auth/logout")
def auth_logout(token_info: dict = Depends(get_token_info)):
    TOKENS.pop(token_info["token"], None)
    return {"ok": True}


@app.get("/auth/me")
def auth_me(user: dict = Depends(get_current_user)):
    return public_user(user)


# Catalog
@app.get("/catalog")
def get_catalog():
    return {
        "specializations": catalog.SPECIALIZATIONS,
        "time_slots": catalog.TIME_SLOTS,
        "days_of_week": catalog.DAYS_OF_WEEK,
        "medicine_timings": catalog.MEDICINE_TIMINGS,
        "blood_test_types": catalog.BLOOD_TEST_TYPES,
    }


@app.get("/catalog/medicines")
def search_medicines(q: str = ""):
    return catalog.search_medicines(q) if q else catalog.MEDICINES


# Doctors & availability
@app.get("/doctors")
def get_doctors(specialization: Optional[str] = None, q: Optional[str] = None):
    return list_doctors(specialization=specialization, query=q)


@app.get("/doctors/{doctor_id}")
def get_doctor(doctor_id: str):
    doc = get_user(doctor_id)
    if not doc or doc.get("role") != "doctor":
        raise HTTPException(status_code=404, detail="Doctor not found")
    return public_user(doc)


@app.get("/doctors/{doctor_id}/slots")
def get_doctor_slots(doctor_id: str, date: str, end_date: Optional[str] = None):
    return _check(slots.get_doctor_availability(doctor_id, date, end_date))


@app.get("/doctor/availability")
def get_own_availability(date: str, doctor: dict = Depends(require_role("doctor"))):
    return _check(slots.get_declared_availability(doctor["id"], date))


@app.put("/doctor/availability")
def put_own_availability(payload: AvailabilityUpdate, doctor: dict = Depends(require_role("doctor"))):
    return _check(slots.set_doctor_availability(doctor["id"], payload.date, payload.slots))


# Appointments
@app.post("/appointments", status_code=201)
def create_appointment(payload: BookingRequest, patient: dict = Depends(require_role("patient"))):
    return _check(slots.book_appointment(
        patient_id=patient["id"],
        doctor_id=payload.doctor_id,
        date_str=payload.date,
        time_label=payload.time,
        appointment_type=payload.type,
        notes=payload.notes,
    ))


@app.get("/appointments")
def get_appointments(user: dict = Depends(get_current_user)):
    appts = appointments.list_for_user(user)
    return {"appointments": appts, **appointments.split_by_day(appts)}


@app.get("/doctor/appointments/week")
def get_week(start: Optional[str] = None, doctor: dict = Depends(require_role("doctor"))):
    anchor = date.today()
    if start:
        anchor = parse_date(start)
        if anchor is None:
            raise HTTPException(status_code=400, detail="Invalid start date, expected YYYY-MM-DD")
    return {"days": appointments.week_view(doctor, anchor)}


@app.post("/appointments/{appointment_id}/confirm")
def confirm_appointment(appointment_id: str, doctor: dict = Depends(require_role("doctor"))):
    return _check(appointments.confirm(appointment_id, doctor))


@app.post("/appointments/{appointment_id}/complete")
def complete_appointment(appointment_id: str, doctor: dict = Depends(require_role("doctor"))):
    return _check(appointments.complete(appointment_id, doctor))


@app.post("/appointments/{appointment_id}/cancel")
def cancel_appointment(appointment_id: str, user: dict = Depends(get_current_user)):
    return _check(appointments.cancel(appointment_id, user))


@app.post("/appointments/{appointment_id}/follow-up")
def follow_up_appointment(appointment_id: str, payload: FollowUpRequest, doctor: dict = Depends(require_role("doctor"))):
    return _check(appointments.add_follow_up(appointment_id, doctor, payload))


@app.post("/appointments/{appointment_id}/rating")
def rate_appointment(appointment_id: str, payload: RatingRequest, patient: dict = Depends(require_role("patient"))):
    return _check(appointments.rate(appointment_id, patient, payload))


@app.post("/doctor/report")
def doctor_report(payload: ReportRequest, doctor: dict = Depends(require_role("doctor"))):
    return _check(appointments.get_doctor_summary_report(doctor, payload.ref_date, payload.send_notification))


# Patients
@app.get("/doctor/patients")
def get_doctor_patients(q: Optional[str] = None, doctor: dict = Depends(require_role("doctor"))):
    return patients.patients_for_doctor(doctor, q)


@app.get("/patients/{patient_id}")
def get_patient(patient_id: str, user: dict = Depends(get_current_user)):
    _require_patient_access(user, patient_id)
    overview = patients.patient_overview(user, patient_id)
    if overview is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return overview


# Records, prescriptions, medications
@app.get("/patients/{patient_id}/records")
def get_records(patient_id: str, type: Optional[str] = None, user: dict = Depends(get_current_user)):
    _require_patient_access(user, patient_id)
    return records.list_records(patient_id, type)


@app.post("/records", status_code=201)
def create_record(payload: MedicalRecordRequest, doctor: dict = Depends(require_role("doctor"))):
    return _check(records.add_record(doctor, payload))


@app.delete("/records/{record_id}")
def remove_record(record_id: str, doctor: dict = Depends(require_role("doctor"))):
    return _check(records.delete_record(doctor, record_id))


@app.post("/prescriptions", status_code=201)
def create_prescription(payload: PrescriptionRequest, doctor: dict = Depends(require_role("doctor"))):
    return _check(records.prescribe(doctor, payload))


@app.get("/patients/{patient_id}/medications")
def get_medications(patient_id: str, user: dict = Depends(get_current_user)):
    _require_patient_access(user, patient_id)
    return records.list_medications(patient_id)


@app.patch("/medications/{medication_id}")
def patch_medication(medication_id: str, payload: MedicationUpdate, doctor: dict = Depends(require_role("doctor"))):
    return _check(records.update_medication(doctor, medication_id, payload))


@app.delete("/medications/{medication_id}")
def remove_medication(medication_id: str, doctor: dict = Depends(require_role("doctor"))):
    return _check(records.delete_medication(doctor, medication_id))


@app.get("/patients/{patient_id}/prescribed-medicines")
def get_prescribed_medicines(patient_id: str, user: dict = Depends(get_current_user)):
    _require_patient_access(user, patient_id)
    return records.prescribed_medicines(patient_id)


@app.get("/patients/{patient_id}/follow-ups")
def get_follow_ups(patient_id: str, user: dict = Depends(get_current_user)):
    _require_patient_access(user, patient_id)
    return records.follow_ups(patient_id)


# Patient's own profile entries
@app.get("/me/health-metrics")
def get_health_metrics(patient: dict = Depends(require_role("patient"))):
    return patients.get_health_metrics(patient["id"])


@app.post("/me/health-metrics", status_code=201)
def post_health_metric(payload: HealthMetricRequest, patient: dict = Depends(require_role("patient"))):
    return patients.add_health_metric(patient["id"], payload)


@app.get("/me/family")
def get_family(patient: dict = Depends(require_role("patient"))):
    return patients.list_family(patient["id"])


@app.post("/me/family", status_code=201)
def post_family_member(payload: FamilyMemberRequest, patient: dict = Depends(require_role("patient"))):
    return patients.add_family_member(patient["id"], payload)


@app.put("/me/family/{member_id}")
def put_family_member(member_id: str, payload: FamilyMemberRequest, patient: dict = Depends(require_role("patient"))):
    member = patients.update_family_member(patient["id"], member_id, payload)
    if member is None:
        raise HTTPException(status_code=404, detail="Family member not found")
    return member


@app.delete("/me/family/{member_id}")
def delete_family_member(member_id: str, patient: dict = Depends(require_role("patient"))):
    if not patients.delete_family_member(patient["id"], member_id):
        raise HTTPException(status_code=404, detail="Family member not found")
    return {"ok": True}


@app.get("/me/insurance")
def get_insurance(patient: dict = Depends(require_role("patient"))):
    return patients.get_insurance(patient["id"])


@app.put("/me/insurance")
def put_insurance(payload: InsuranceRequest, patient: dict = Depends(require_role("patient"))):
    return patients.update_insurance(patient["id"], payload)


# Messaging
@app.post("/messages", status_code=201)
def post_message(payload: MessageRequest, user: dict = Depends(get_current_user)):
    return _check(messages.send_message(user, payload))


@app.get("/messages")
def get_conversations(user: dict = Depends(get_current_user)):
    return messages.list_conversations(user["id"])


@app.get("/messages/{peer_id}")
def get_thread(peer_id: str, user: dict = Depends(get_current_user)):
    return messages.get_thread(user["id"], peer_id)


# Uploads
@app.post("/api/uploads", status_code=201)
async def post_upload(file: UploadFile = File(...), user: dict = Depends(get_current_user)):
    if file.size is not None and file.size > config.MAX_UPLOAD_BYTES:
        return _check(uploads.validate_upload(file.content_type, file.size))
    # one byte past the limit is enough to reject oversized bodies without size info
    data = await file.read(config.MAX_UPLOAD_BYTES + 1)
    return _check(uploads.save_upload(file.filename, file.content_type, data, user["id"]))


# AI assistant
@app.get("/api/ai/greeting")
def api_ai_greeting():
    return {"reply": ai.GREETING}


@app.post("/api/ai")
def api_ai(payload: AIRequest, token_info: dict = Depends(get_token_info)):
    if not payload.message or payload.message.strip() == "":
        raise HTTPException(status_code=400, detail="message required")
    return _check(ai.process_user_message(payload.session_id, payload.message.strip(), token_info=token_info))


@app.post("/api/ai/image-analysis")
def api_image_analysis(payload: ImageAnalysisRequest, token_info: dict = Depends(get_token_info)):
    return ai.analyze_image([p.model_dump() for p in payload.predictions])


@app.get("/api/session/{session_id}")
def get_session(session_id: str, token_info: dict = Depends(get_token_info)):
    return _check(ai.dump_session(session_id, token_info["user_id"]))


# Debug
@app.get("/debug/logs")
def debug_logs(doctor: dict = Depends(require_role("doctor"))):
    return get_logs()


@app.delete("/debug/logs")
def debug_clear_logs(doctor: dict = Depends(require_role("doctor"))):
    clear_logs()
    return {"ok": True}
