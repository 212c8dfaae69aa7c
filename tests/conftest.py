import os
import tempfile

# settings are read at import time, so they must be in place before the app loads
_TMP = tempfile.mkdtemp(prefix="healthaxis-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["GOOGLE_CREDENTIALS_PATH"] = os.path.join(_TMP, "missing-credentials.json")
os.environ["GOOGLE_TOKEN_PATH"] = os.path.join(_TMP, "missing-token.json")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("SLACK_WEBHOOK_URL", None)

from datetime import date, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from healthaxis import ai, config  # noqa: E402
from healthaxis.catalog import TIME_SLOTS  # noqa: E402
from healthaxis.db import Base, engine  # noqa: E402
from healthaxis.logger import clear_logs  # noqa: E402
from healthaxis.main import TOKENS, app  # noqa: E402
from healthaxis.portal.slots import set_doctor_availability  # noqa: E402
from healthaxis.portal.users import get_user, register_user  # noqa: E402
from healthaxis.schemas import RegisterRequest  # noqa: E402

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def fresh_state(monkeypatch):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    TOKENS.clear()
    ai.sessions.clear()
    ai.session_owners.clear()
    clear_logs()
    monkeypatch.setattr(ai, "USE_OPENAI", False)
    monkeypatch.setattr(ai, "openai_client", None)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def future_day():
    return date.today() + timedelta(days=7)


def _register(name, email, role="patient", **extra):
    fields = dict(
        name=name,
        email=email,
        password=PASSWORD,
        confirm_password=PASSWORD,
        role=role,
        date_of_birth="1990-05-17",
        gender="female",
    )
    if role == "doctor":
        fields.update(doctor_code=config.DOCTOR_REGISTRATION_CODE, specialization="Cardiologist")
    fields.update(extra)
    res = register_user(RegisterRequest(**fields))
    assert res["ok"], res
    return get_user(res["user"]["id"])


@pytest.fixture
def make_user():
    return _register


@pytest.fixture
def patient():
    return _register("Jane Patient", "jane@healthaxis.com")


@pytest.fixture
def other_patient():
    return _register("Omar Other", "omar@healthaxis.com")


@pytest.fixture
def doctor(future_day):
    doc = _register("Alice Smith", "alice.smith@healthaxis.com", role="doctor")
    set_doctor_availability(doc["id"], future_day.isoformat(), TIME_SLOTS)
    return get_user(doc["id"])


@pytest.fixture
def other_doctor():
    return _register("Bob Jones", "bob.jones@healthaxis.com", role="doctor", specialization="Dermatologist")


@pytest.fixture
def login(client):
    def _login(user):
        resp = client.post("/auth/login", json={"email": user["email"], "password": PASSWORD, "role": user["role"]})
        assert resp.status_code == 200, resp.text
        return {"X-AUTH": resp.json()["token"]}
    return _login


@pytest.fixture
def ticking_clock(monkeypatch):
    """Strictly increasing timestamps so ordering tests don't depend on clock resolution."""
    from datetime import datetime
    from healthaxis.portal import messages, records

    start = datetime(2030, 1, 1, 9, 0, 0)
    ticks = iter(range(1, 10_000))

    def fake_now_iso():
        return (start + timedelta(seconds=next(ticks))).isoformat()

    monkeypatch.setattr(records, "now_iso", fake_now_iso)
    monkeypatch.setattr(messages, "now_iso", fake_now_iso)
    return fake_now_iso
