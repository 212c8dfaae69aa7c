"""
Request bodies accepted by the portal API.

Stored records are plain dictionaries (see ``storage``); these models only
validate what clients send before it is turned into such a record.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from . import config
from .catalog import BLOOD_TEST_TYPES

Role = Literal["doctor", "patient"]


# Auth
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, description="Full name")
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirm_password: str
    role: Role = "patient"
    date_of_birth: str = Field(..., min_length=1, description="Date of birth (YYYY-MM-DD)")
    gender: Literal["male", "female", "non-binary", "prefer-not-to-say"]
    phone: Optional[str] = None
    address: Optional[str] = None
    blood_group: Optional[str] = None
    hospital_name: Optional[str] = None
    doctor_code: Optional[str] = Field(None, description="Registration code required for doctors")
    specialization: Optional[str] = None

    @model_validator(mode="after")
    def check_consistency(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        if self.role == "doctor":
            if self.doctor_code != config.DOCTOR_REGISTRATION_CODE:
                raise ValueError("Invalid doctor authentication code")
            if not self.specialization:
                raise ValueError("Specialization is required for doctors")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Role = "patient"


# Scheduling
class AvailabilityUpdate(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    slots: List[str] = Field(default_factory=list)


class BookingRequest(BaseModel):
    doctor_id: str
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="Slot label, e.g. '09:00 AM'")
    type: str = "consultation"
    notes: Optional[str] = None


class FollowUpRequest(BaseModel):
    type: Literal["revisit", "test", "referral"] = "revisit"
    recommended_date: str
    notes: str = ""
    referral_doctor: Optional[str] = None
    test_type: Optional[str] = None

    @model_validator(mode="after")
    def check_type_fields(self):
        if self.type == "referral" and not self.referral_doctor:
            raise ValueError("referral_doctor is required for referrals")
        if self.type == "test" and self.test_type not in BLOOD_TEST_TYPES:
            raise ValueError("test_type must be one of the known blood tests")
        return self


class RatingRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: str = ""


class ReportRequest(BaseModel):
    ref_date: Optional[str] = None
    send_notification: bool = False


# Records
class MedicineIn(BaseModel):
    name: str = Field(..., min_length=1)
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    timing: List[str] = Field(default_factory=list)


class PrescriptionRequest(BaseModel):
    patient_id: str
    appointment_id: Optional[str] = None
    medicines: List[MedicineIn] = Field(..., min_length=1)
    instructions: str = ""
    duration: str = ""
    notes: str = ""


class MedicalRecordRequest(BaseModel):
    patient_id: str
    type: str = Field(..., min_length=1, description="e.g. diagnosis, blood_test, prescription")
    details: Dict[str, Any] = Field(default_factory=dict)


class MedicationUpdate(BaseModel):
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    timing: Optional[List[str]] = None
    instructions: Optional[str] = None
    notes: Optional[str] = None
    next_dose: Optional[str] = None


# Messaging
class Attachment(BaseModel):
    type: Literal["prescription", "image"]
    url: str
    name: str


class MessageRequest(BaseModel):
    receiver_id: str
    content: str = ""
    attachments: List[Attachment] = Field(default_factory=list)


# Patient profile entries
class HealthMetricRequest(BaseModel):
    blood_pressure: str
    heart_rate: int = Field(..., gt=0)
    weight: float = Field(..., gt=0)
    temperature: float
    blood_oxygen: int = Field(..., ge=0, le=100)


class FamilyMemberRequest(BaseModel):
    name: str = Field(..., min_length=1)
    relationship: str = Field(..., min_length=1)
    phone: Optional[str] = None


class Coverage(BaseModel):
    inpatient: bool = False
    outpatient: bool = False
    prescription: bool = False
    dental: bool = False
    vision: bool = False


class PrimaryHolder(BaseModel):
    name: str = ""
    relationship: str = ""


class InsuranceRequest(BaseModel):
    provider: str
    policy_number: str
    expiry_date: str
    type: str = ""
    coverage: Coverage = Field(default_factory=Coverage)
    primary_holder: PrimaryHolder = Field(default_factory=PrimaryHolder)


# Assistant
class AIRequest(BaseModel):
    session_id: Optional[str] = None
    message: str


class Prediction(BaseModel):
    class_name: str
    probability: float = Field(..., ge=0, le=1)

    @field_validator("class_name")
    @classmethod
    def strip_label(cls, value: str) -> str:
        return value.strip()


class ImageAnalysisRequest(BaseModel):
    predictions: List[Prediction] = Field(default_factory=list)
