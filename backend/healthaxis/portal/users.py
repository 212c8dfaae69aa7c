import logging
from typing import Dict, List, Optional

from passlib.context import CryptContext

from .. import storage
from ..logger import log_event
from ..schemas import RegisterRequest
from .resources import new_id

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def public_user(user: Dict) -> Dict:
    return {k: v for k, v in user.items() if k != "password"}


def get_user(user_id: str) -> Optional[Dict]:
    return storage.find_item(storage.USERS, user_id)


def get_user_by_email(email: str) -> Optional[Dict]:
    email = (email or "").strip().lower()
    for user in storage.get_collection(storage.USERS):
        if user.get("email", "").lower() == email:
            return user
    return None


def list_users(role: str = None) -> List[Dict]:
    users = storage.get_collection(storage.USERS)
    if role:
        users = [u for u in users if u.get("role") == role]
    return users


def list_doctors(specialization: str = None, query: str = None) -> List[Dict]:
    doctors = list_users("doctor")
    if specialization:
        doctors = [d for d in doctors if (d.get("specialization") or "").lower() == specialization.lower()]
    if query:
        q = query.lower()
        doctors = [d for d in doctors if q in d.get("name", "").lower() or q in (d.get("specialization") or "").lower()]
    return [public_user(d) for d in doctors]


def register_user(payload: RegisterRequest) -> Dict:
    if get_user_by_email(payload.email):
        log_event(logging.WARNING, "Registration rejected - email exists", {"email": payload.email})
        return {"ok": False, "error": "Email already exists"}

    is_doctor = payload.role == "doctor"
    user = {
        "id": new_id(),
        "name": payload.name.strip(),
        "email": payload.email.lower(),
        "password": hash_password(payload.password),
        "role": payload.role,
        "phone": payload.phone,
        "address": payload.address,
        "date_of_birth": payload.date_of_birth,
        "gender": payload.gender,
        "blood_group": None if is_doctor else payload.blood_group,
        "hospital_name": payload.hospital_name if is_doctor else None,
        "specialization": payload.specialization if is_doctor else None,
    }
    if is_doctor:
        user["available_times"] = []
        user["ratings"] = []
        user["average_rating"] = None

    storage.append_item(storage.USERS, user)
    log_event(logging.INFO, "User registered", {"user_id": user["id"], "role": user["role"]})
    return {"ok": True, "user": public_user(user)}


def authenticate(email: str, password: str, role: str) -> Optional[Dict]:
    log_event(logging.INFO, "Login attempt", {"email": email, "role": role})
    user = get_user_by_email(email)
    if not user or user.get("role") != role or not verify_password(password, user.get("password", "")):
        log_event(logging.WARNING, "Login failed - invalid credentials", {"email": email})
        return None
    log_event(logging.INFO, "Login successful", {"user_id": user["id"], "role": role})
    return user


def update_user(user: Dict) -> bool:
    return storage.replace_item(storage.USERS, user["id"], user)
