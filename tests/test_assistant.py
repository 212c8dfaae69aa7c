import json
from types import SimpleNamespace

import pytest

from healthaxis import ai, storage
from healthaxis.catalog import TIME_SLOTS
from healthaxis.portal import triage


def _patient_token(patient):
    return {"user_id": patient["id"], "role": "patient", "email": patient["email"]}


# Offline assistant

def test_symptoms_get_candidate_conditions():
    out = ai.process_user_message(None, "I have a headache and a fever")
    assert out["ok"]
    assert out["mode"] == "mock"
    assert "Migraine" in out["reply"]
    assert "Flu" in out["reply"]
    assert "consult" in out["reply"]


def test_image_request_gets_upload_hint():
    assert ai.process_user_message(None, "Can I send a photo of my arm?")["reply"] == triage.UPLOAD_HINT


def test_vague_message_asks_for_more():
    assert ai.process_user_message(None, "hello")["reply"] == triage.NEED_MORE_INFO


def test_availability_question(doctor, patient, future_day):
    out = ai.process_user_message(None, f"What availability does Dr. Smith have on {future_day.isoformat()}?", token_info=_patient_token(patient))
    assert out["tool_calls"][0]["tool"] == "get_available_slots"
    assert "09:00 AM" in out["reply"]
    assert "Alice Smith" in out["reply"]


def test_booking_through_assistant(doctor, patient, future_day):
    out = ai.process_user_message(None, f"Please book Dr. Smith on {future_day.isoformat()} at 9:30 am", token_info=_patient_token(patient))
    result = out["tool_calls"][0]["result"]
    assert result["ok"], result
    appts = storage.get_collection(storage.APPOINTMENTS)
    assert len(appts) == 1
    assert appts[0]["time"] == "09:30 AM"
    assert appts[0]["patient_id"] == patient["id"]
    assert "Status: pending" in out["reply"]


def test_doctors_cannot_book_through_assistant(doctor, other_doctor, future_day):
    token = {"user_id": other_doctor["id"], "role": "doctor", "email": other_doctor["email"]}
    out = ai.process_user_message(None, f"book Dr. Smith on {future_day.isoformat()} at 9:30 am", token_info=token)
    assert not out["tool_calls"][0]["result"]["ok"]
    assert storage.get_collection(storage.APPOINTMENTS) == []


def test_unknown_doctor_lists_choices(doctor):
    out = ai.process_user_message(None, "show available slots")
    assert "Dr. Alice Smith" in out["reply"]


def test_session_history_is_kept():
    first = ai.process_user_message(None, "I feel dizziness")
    ai.process_user_message(first["session_id"], "and nausea")
    history = ai.dump_session(first["session_id"])["history"]
    assert [h["role"] for h in history] == ["user", "assistant", "user", "assistant"]


def test_session_is_capped():
    sid = ai.create_session()
    for i in range(ai.SESSION_MAX_LEN + 5):
        ai.append_session(sid, "user", str(i))
    history = ai.get_session_history(sid)
    assert len(history) == ai.SESSION_MAX_LEN
    assert history[-1]["content"] == str(ai.SESSION_MAX_LEN + 4)


def test_unknown_tool():
    assert not ai.call_tool_by_name("drop_tables", {})["ok"]


def test_friendly_errors():
    assert "API key" in ai.friendly_error(Exception("Incorrect API key provided"))
    assert "Network" in ai.friendly_error(Exception("Connection refused"))
    assert "high demand" in ai.friendly_error(Exception("Error code: 429"))
    assert ai.friendly_error(Exception("boom")) == "Error: boom"


# Image analysis

def test_image_predictions_map_to_conditions():
    analysis = triage.map_predictions([{"class_name": "conjunctivitis", "probability": 0.5}])
    assert analysis == [
        {"condition": "Conjunctivitis", "confidence": 50.0},
        {"condition": "Cataract", "confidence": 45.0},
        {"condition": "Glaucoma", "confidence": 40.0},
    ]


def test_image_predictions_keep_best_score():
    analysis = triage.map_predictions([
        {"class_name": "wound", "probability": 0.3},
        {"class_name": "cut", "probability": 0.6},
    ])
    assert analysis[0] == {"condition": "Infection", "confidence": 60.0}
    assert len(analysis) == 3


def test_category_without_conditions_reports_itself():
    assert triage.map_predictions([{"class_name": "bandage", "probability": 0.9}]) == [{"condition": "Bandage", "confidence": 90.0}]


def test_image_analysis_without_match():
    out = ai.analyze_image([{"class_name": "golden retriever", "probability": 0.99}])
    assert out["analysis"] == []
    assert out["reply"] == triage.NO_IMAGE_MATCH


# OpenAI flow with a stand-in client

class FakeMessage:
    def __init__(self, content=None, tool_calls=None):
        self.content = content
        self.tool_calls = tool_calls

    def model_dump(self, exclude_none=False):
        dumped = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            dumped["tool_calls"] = [
                {"id": c.id, "type": "function", "function": {"name": c.function.name, "arguments": c.function.arguments}}
                for c in self.tool_calls
            ]
        if exclude_none:
            dumped = {k: v for k, v in dumped.items() if v is not None}
        return dumped


class FakeCompletions:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=reply)])


@pytest.fixture
def fake_openai(monkeypatch):
    def install(*replies):
        completions = FakeCompletions(*replies)
        monkeypatch.setattr(ai, "USE_OPENAI", True)
        monkeypatch.setattr(ai, "openai_client", SimpleNamespace(chat=SimpleNamespace(completions=completions)))
        return completions
    return install


def test_openai_plain_reply(fake_openai, patient):
    completions = fake_openai(FakeMessage(content="Drink water and rest."))
    out = ai.process_user_message(None, "I have a mild headache", token_info=_patient_token(patient))
    assert out["mode"] == "openai"
    assert out["reply"] == "Drink water and rest."
    sent = completions.calls[0]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[-1] == {"role": "user", "content": "I have a mild headache"}


def test_openai_tool_call_round_trip(fake_openai, doctor, patient, future_day):
    call = SimpleNamespace(
        id="call_1",
        function=SimpleNamespace(name="get_available_slots", arguments=json.dumps({"doctor_id": doctor["id"], "date": future_day.isoformat()})),
    )
    completions = fake_openai(FakeMessage(tool_calls=[call]), FakeMessage(content="Dr. Smith is free at 9 AM."))

    out = ai.process_user_message(None, "When is Dr. Smith free?", token_info=_patient_token(patient))

    assert out["reply"] == "Dr. Smith is free at 9 AM."
    assert out["tool_calls"][0]["result"]["available_slots"][0] == "09:00 AM"
    followup = completions.calls[1]["messages"]
    assert followup[-2]["tool_calls"][0]["id"] == "call_1"
    assert followup[-1]["role"] == "tool"
    assert followup[-1]["tool_call_id"] == "call_1"


def test_openai_empty_summary_falls_back(fake_openai, doctor, patient, future_day):
    call = SimpleNamespace(
        id="call_1",
        function=SimpleNamespace(name="get_available_slots", arguments=json.dumps({"doctor_id": doctor["id"], "date": future_day.isoformat()})),
    )
    fake_openai(FakeMessage(tool_calls=[call]), FakeMessage(content=""))
    out = ai.process_user_message(None, "slots?", token_info=_patient_token(patient))
    assert out["reply"].startswith("Available slots for Dr. Alice Smith")


def test_booking_tool_hidden_from_doctors(fake_openai, doctor):
    completions = fake_openai(FakeMessage(content="ok"))
    ai.process_user_message(None, "hi", token_info={"user_id": doctor["id"], "role": "doctor", "email": doctor["email"]})
    names = [t["function"]["name"] for t in completions.calls[0]["tools"]]
    assert "book_appointment" not in names


def test_openai_failure_is_reported(fake_openai, patient):
    fake_openai(Exception("Error code: 429 - You exceeded your current quota"))
    out = ai.process_user_message(None, "hello", token_info=_patient_token(patient))
    assert out["ok"]
    assert "high demand" in out["error"]
    assert out["reply"].startswith("I apologize")


# Session ownership

def test_session_belongs_to_its_creator(patient, other_patient):
    first = ai.process_user_message(None, "I have a headache and chest pain", token_info=_patient_token(patient))
    sid = first["session_id"]

    assert ai.dump_session(sid, patient["id"])["history"][0]["content"] == "I have a headache and chest pain"

    leaked = ai.dump_session(sid, other_patient["id"])
    assert not leaked["ok"]
    assert leaked["not_found"]

    intruder = ai.process_user_message(sid, "hello there", token_info=_patient_token(other_patient))
    assert not intruder["ok"]
    assert len(ai.get_session_history(sid)) == 2


def test_unknown_session_id_starts_a_new_session(patient):
    out = ai.process_user_message("client-made-id", "I have a cough", token_info=_patient_token(patient))
    assert out["session_id"] == "client-made-id"
    assert ai.owns_session("client-made-id", patient["id"])


# Look-ahead when no date is given

def test_availability_without_date_searches_ahead(doctor, patient, future_day):
    out = ai.process_user_message(None, "When is Dr. Smith available?", token_info=_patient_token(patient))
    call = out["tool_calls"][0]
    assert call["tool"] == "next_available_slots"
    assert call["result"]["ok"]
    assert out["reply"] == f"Next available slots for Dr. Alice Smith on {future_day.isoformat()}: " + ", ".join(TIME_SLOTS)


def test_availability_without_date_and_no_slots(other_doctor, patient):
    out = ai.process_user_message(None, "Any slots with Dr. Jones?", token_info=_patient_token(patient))
    assert out["reply"] == f"No available slots for Dr. Bob Jones in the next {ai.LOOKAHEAD_DAYS} days."


def test_booking_request_without_time_offers_upcoming_slots(doctor, patient):
    out = ai.process_user_message(None, "I want to book Dr. Smith", token_info=_patient_token(patient))
    assert out["tool_calls"][0]["tool"] == "next_available_slots"
    assert "Say 'book Dr." in out["reply"]
    assert storage.get_collection(storage.APPOINTMENTS) == []
