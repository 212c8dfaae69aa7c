from datetime import date, timedelta

from . import config
from .catalog import TIME_SLOTS
from .init_db import init
from .portal.slots import set_doctor_availability
from .portal.users import get_user_by_email, register_user
from .schemas import RegisterRequest

DEMO_PASSWORD = "password123"

DOCTORS_TO_ADD = [
    ("Ahuja", "General Physician"),
    ("Mehta", "Cardiologist"),
    ("Sharma", "Dermatologist"),
    ("Roy", "Pediatrician"),
    ("Joy", "Neurologist"),
    ("Joshi", "Orthopedist"),
]

DAYS_AHEAD = 14


def _demo_email(name: str) -> str:
    return f"dr.{name.lower()}@healthaxis.com"


def seed():
    init()
    today = date.today()
    for name, specialization in DOCTORS_TO_ADD:
        email = _demo_email(name)
        existing = get_user_by_email(email)
        if existing:
            print(f"Doctor already exists: Dr. {name}")
            continue
        res = register_user(RegisterRequest(
            name=name,
            email=email,
            password=DEMO_PASSWORD,
            confirm_password=DEMO_PASSWORD,
            role="doctor",
            date_of_birth="1980-01-01",
            gender="prefer-not-to-say",
            doctor_code=config.DOCTOR_REGISTRATION_CODE,
            specialization=specialization,
            hospital_name="HealthAxis General",
        ))
        doctor_id = res["user"]["id"]
        for offset in range(DAYS_AHEAD):
            day = today + timedelta(days=offset)
            # weekdays only
            if day.weekday() < 5:
                set_doctor_availability(doctor_id, day.isoformat(), TIME_SLOTS)
        print(f"Seeded Dr. {name}")


if __name__ == "__main__":
    seed()
