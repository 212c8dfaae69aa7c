from datetime import date, datetime, time, timedelta
from typing import Dict, Optional
from email.mime.text import MIMEText
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
import base64
import logging
import os
import uuid

from ..config import GOOGLE_CREDENTIALS_PATH, GOOGLE_DIR, GOOGLE_TOKEN_PATH
from ..logger import log_event

# Google scopes we need for Calendar events and Gmail send
SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/gmail.send",
]


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now().isoformat()


def parse_date(value) -> Optional[date]:
    """
    Accept 'YYYY-MM-DD' or a full ISO timestamp (older records stored the
    booking date that way). Returns None when the value can't be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_slot(label: str) -> Optional[time]:
    """'02:30 PM' -> time(14, 30)"""
    try:
        return datetime.strptime(label.strip(), "%I:%M %p").time()
    except (AttributeError, ValueError):
        return None


def slot_start(day: date, label: str) -> Optional[datetime]:
    t = parse_slot(label)
    if t is None:
        return None
    return datetime.combine(day, t)


def daterange(start_date, end_date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def week_days(anchor: date):
    """Seven days starting at the Sunday on or before ``anchor``."""
    start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
    return list(daterange(start, start + timedelta(days=6)))


def get_google_credentials(scopes=SCOPES) -> Optional[Credentials]:
    if not os.path.exists(GOOGLE_CREDENTIALS_PATH):
        return None

    creds = None
    if os.path.exists(GOOGLE_TOKEN_PATH):
        creds = Credentials.from_authorized_user_file(GOOGLE_TOKEN_PATH, scopes)
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except Exception as e:
                log_event(logging.WARNING, "Google token refresh failed", {"error": str(e)})
                creds = None
        if not creds:
            try:
                flow = InstalledAppFlow.from_client_secrets_file(GOOGLE_CREDENTIALS_PATH, scopes)
                creds = flow.run_local_server(port=0)
                ensure_google_folder()
                with open(GOOGLE_TOKEN_PATH, "w") as token_file:
                    token_file.write(creds.to_json())
            except Exception as e:
                log_event(logging.WARNING, "Google authorization failed", {"error": str(e)})
                return None
    return creds


def send_calendar_event(doctor_name: str, patient_name: str, start_iso: str, end_iso: str) -> Dict:
    creds = get_google_credentials()
    if not creds:
        return {"ok": True, "source": "simulated_calendar", "note": "missing_credentials_or_token"}

    try:
        service = build("calendar", "v3", credentials=creds, cache_discovery=False)
        event = {
            "summary": f"Appointment: {patient_name} with Dr. {doctor_name}",
            "description": f"Appointment confirmed via HealthAxis. Patient: {patient_name}",
            "start": {"dateTime": start_iso, "timeZone": "UTC"},
            "end": {"dateTime": end_iso, "timeZone": "UTC"},
        }
        created = service.events().insert(calendarId="primary", body=event).execute()
        return {"ok": True, "source": "google_calendar", "event_id": created.get("id"), "htmlLink": created.get("htmlLink")}
    except Exception as e:
        log_event(logging.ERROR, "Calendar event failed", {"error": str(e)})
        return {"ok": False, "error": str(e)}


def send_email(to_email: str, subject: str, body_text: str, from_name: str = None) -> Dict:
    creds = get_google_credentials()
    if not creds:
        return {"ok": True, "source": "simulated_email", "note": "missing_credentials_or_token"}

    try:
        service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        message = MIMEText(body_text, "plain")
        if from_name:
            message["From"] = from_name
        message["To"] = to_email
        message["Subject"] = subject
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode()
        send_result = service.users().messages().send(userId="me", body={"raw": raw}).execute()
        return {"ok": True, "source": "gmail_api", "message_id": send_result.get("id")}
    except Exception as e:
        log_event(logging.ERROR, "Email send failed", {"error": str(e)})
        return {"ok": False, "error": str(e)}


def ensure_google_folder():
    if not os.path.exists(GOOGLE_DIR):
        os.makedirs(GOOGLE_DIR, exist_ok=True)
