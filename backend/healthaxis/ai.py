import json
import logging
import re
import time
import uuid
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from .config import OPENAI_API_KEY, OPENAI_MODEL
from .logger import log_event
from .portal import slots, triage
from .portal.users import get_user, list_doctors

# OpenAI client: only initialize if API key present
USE_OPENAI = bool(OPENAI_API_KEY)

openai_client = None
if USE_OPENAI:
    try:
        from openai import OpenAI
        openai_client = OpenAI(api_key=OPENAI_API_KEY)
    except Exception as e:
        log_event(logging.ERROR, "OpenAI client init failed", {"error": str(e)})
        openai_client = None
        USE_OPENAI = False

GREETING = "Hello! I am your HealthAxis AI Assistant. How can I help you today?"

SYSTEM_PROMPT = (
    "You are HealthAxis, a helpful healthcare assistant inside a patient/doctor portal. "
    "Provide accurate, helpful, and safe medical information. Always include a short disclaimer "
    "that your answer is not a diagnosis and the user should consult a healthcare professional.\n\n"
    "TOOLS:\n"
    "- list_doctors: find doctors by name or specialization.\n"
    "- get_available_slots: free slots for a doctor on a date (YYYY-MM-DD).\n"
    "- next_available_slots: free slots for a doctor over the next two weeks when no date is given.\n"
    "- book_appointment: book a free slot for the signed-in patient.\n\n"
    "RULES:\n"
    "1. Never invent doctors, dates or slots; look them up with the tools.\n"
    "2. Ask for the doctor, date and time before booking, and confirm with the user first.\n"
    "3. Slot labels look like '09:00 AM' and must be copied exactly.\n"
    "4. Never reveal internal JSON, tool arguments or ids unless the user needs them.\n"
    "5. For emergencies, tell the user to contact local emergency services immediately.\n"
    "6. Keep responses concise and on-topic; politely redirect non-medical questions.\n"
)

# Sessions (in-memory)
sessions: Dict[str, List[Dict[str, Any]]] = {}
# session id -> user id of whoever opened it
session_owners: Dict[str, Optional[str]] = {}
SESSION_MAX_LEN = 20

# days searched when the user asks for slots without naming a date
LOOKAHEAD_DAYS = 14


def _now_ts():
    return int(time.time())


def create_session(owner_id: Optional[str] = None, session_id: Optional[str] = None) -> str:
    sid = session_id or str(uuid.uuid4())
    sessions[sid] = []
    session_owners[sid] = owner_id
    return sid


def owns_session(session_id: str, user_id: Optional[str]) -> bool:
    return session_id in sessions and session_owners.get(session_id) == user_id


def append_session(session_id: str, role: str, content: str):
    if session_id not in sessions:
        sessions[session_id] = []
    sessions[session_id].append({"role": role, "content": content, "time": _now_ts()})
    if len(sessions[session_id]) > SESSION_MAX_LEN:
        sessions[session_id] = sessions[session_id][-SESSION_MAX_LEN:]


def get_session_history(session_id: str) -> List[Dict[str, Any]]:
    return sessions.get(session_id, [])


def friendly_error(error: Exception) -> str:
    text = str(error)
    lowered = text.lower()
    if "api key" in lowered or "api_key" in lowered or "authentication" in lowered:
        return "Error: Please check your API key configuration. Make sure a valid OPENAI_API_KEY is set."
    if "network" in lowered or "connection" in lowered:
        return "Error: Network issue detected. Please check your internet connection."
    if "quota" in lowered or "429" in lowered or "rate limit" in lowered:
        return "Error: The AI service is currently experiencing high demand. Please try again in a few minutes."
    return f"Error: {text}"


def build_tools_schema():
    return [
        {
            "type": "function",
            "function": {
                "name": "list_doctors",
                "description": "Search doctors by name or specialization.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {"type": "string"},
                        "specialization": {"type": "string"},
                    },
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "get_available_slots",
                "description": "Return free slots for a doctor on a date.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "doctor_id": {"type": "string"},
                        "date": {"type": "string", "description": "YYYY-MM-DD"},
                    },
                    "required": ["doctor_id", "date"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "next_available_slots",
                "description": "Free slots for a doctor over the coming days, when the user gave no date.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "doctor_id": {"type": "string"},
                    },
                    "required": ["doctor_id"],
                },
            },
        },
        {
            "type": "function",
            "function": {
                "name": "book_appointment",
                "description": "Book a free slot for the signed-in patient.",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "doctor_id": {"type": "string"},
                        "date": {"type": "string", "description": "YYYY-MM-DD"},
                        "time": {"type": "string", "description": "Slot label, e.g. '09:00 AM'"},
                        "notes": {"type": "string"},
                    },
                    "required": ["doctor_id", "date", "time"],
                },
            },
        },
    ]


# Call the portal functions, with role-based access control
def call_tool_by_name(name: str, args: dict, token_info: Optional[dict] = None):
    role = (token_info or {}).get("role")
    try:
        if name == "list_doctors":
            doctors = list_doctors(specialization=args.get("specialization"), query=args.get("query"))
            return {
                "ok": True,
                "doctors": [
                    {"id": d["id"], "name": d["name"], "specialization": d.get("specialization"), "average_rating": d.get("average_rating")}
                    for d in doctors
                ],
            }
        if name == "get_available_slots":
            return slots.get_doctor_availability(args.get("doctor_id"), args.get("date"))
        if name == "next_available_slots":
            return slots.next_available(args.get("doctor_id"), days=LOOKAHEAD_DAYS)
        if name == "book_appointment":
            if role != "patient":
                return {"ok": False, "error": "forbidden: only patients can book appointments"}
            return slots.book_appointment(
                patient_id=token_info["user_id"],
                doctor_id=args.get("doctor_id"),
                date_str=args.get("date"),
                time_label=args.get("time"),
                notes=args.get("notes"),
            )
        return {"ok": False, "error": f"Unknown tool '{name}'"}
    except Exception as e:
        log_event(logging.ERROR, "Assistant tool failed", {"tool": name, "error": str(e)})
        return {"ok": False, "error": str(e)}


def summarize_tool_outputs(tool_outputs: List[Dict[str, Any]]) -> str:
    """
    Create readable text from tool outputs if the model fails to produce a good summary.
    """
    lines = []
    for entry in tool_outputs:
        tool = entry.get("tool")
        res = entry.get("result", {})
        if not res.get("ok"):
            lines.append(f"Sorry, that didn't work: {res.get('error')}")
        elif tool == "list_doctors":
            doctors = res.get("doctors", [])
            if not doctors:
                lines.append("No matching doctors found.")
            for d in doctors[:6]:
                lines.append(f" • Dr. {d['name']} ({d.get('specialization') or 'General'})")
        elif tool == "get_available_slots":
            free = res.get("available_slots", [])
            if not free:
                lines.append(f"No available slots for Dr. {res.get('doctor')} on {res.get('date')}.")
            else:
                lines.append(f"Available slots for Dr. {res.get('doctor')} on {res.get('date')}: {', '.join(free)}")
        elif tool == "next_available_slots":
            open_days = [d for d in res.get("days", []) if d.get("slots")]
            if not open_days:
                lines.append(f"No available slots for Dr. {res.get('doctor')} in the next {LOOKAHEAD_DAYS} days.")
            else:
                first = open_days[0]
                lines.append(f"Next available slots for Dr. {res.get('doctor')} on {first['date']}: {', '.join(first['slots'])}")
        elif tool == "book_appointment":
            appt = res.get("appointment", {})
            lines.append(f"Appointment requested for {appt.get('date')} at {appt.get('time')}. Status: {appt.get('status')}.")
        else:
            lines.append(json.dumps(res))
    return "\n".join(lines) if lines else "No results."


def _find_doctor(message: str) -> Optional[Dict]:
    m = re.search(r"dr\.?\s+([a-zA-Z]+)", message, re.IGNORECASE)
    if not m:
        return None
    matches = list_doctors(query=m.group(1))
    return matches[0] if matches else None


def _mentioned_date(message: str) -> Optional[date]:
    msg = message.lower()
    explicit = re.search(r"(\d{4}-\d{2}-\d{2})", message)
    if explicit:
        try:
            return date.fromisoformat(explicit.group(1))
        except ValueError:
            pass
    if "tomorrow" in msg:
        return date.today() + timedelta(days=1)
    if "today" in msg:
        return date.today()
    return None


def mock_agent_reply(session_id: str, message: str, token_info: Optional[dict] = None) -> Dict[str, Any]:
    msg = message.lower()
    tool_calls = []
    wants_slots = any(k in msg for k in ("availability", "available", "slots"))
    wants_booking = "book" in msg or "schedule" in msg

    if not (wants_slots or wants_booking):
        return {"reply": triage.analyze_symptoms(message), "tool_calls": []}

    doctor = _find_doctor(message)
    if not doctor:
        names = ", ".join(f"Dr. {d['name']}" for d in list_doctors()[:6]) or "none registered yet"
        return {"reply": f"Which doctor would you like? Available doctors: {names}.", "tool_calls": []}

    mentioned = _mentioned_date(message)
    target = (mentioned or date.today()).isoformat()
    time_match = re.search(r"(\d{1,2}:\d{2}\s*[ap]m)", message, re.IGNORECASE)

    if wants_booking and time_match:
        label = time_match.group(1).upper().replace(" ", "")
        label = f"{label[:-2].zfill(5)} {label[-2:]}"
        args = {"doctor_id": doctor["id"], "date": target, "time": label}
        res = call_tool_by_name("book_appointment", args, token_info=token_info)
        tool_calls.append({"tool": "book_appointment", "args": args, "result": res})
    elif mentioned is None:
        args = {"doctor_id": doctor["id"]}
        res = call_tool_by_name("next_available_slots", args, token_info=token_info)
        tool_calls.append({"tool": "next_available_slots", "args": args, "result": res})
    else:
        args = {"doctor_id": doctor["id"], "date": target}
        res = call_tool_by_name("get_available_slots", args, token_info=token_info)
        tool_calls.append({"tool": "get_available_slots", "args": args, "result": res})

    reply = summarize_tool_outputs(tool_calls)
    if wants_booking and not time_match and res.get("ok") and any(d.get("slots") for d in res.get("days", [])):
        reply += "\nSay 'book Dr. <name> <date> <time>' to request one of them."
    return {"reply": reply, "tool_calls": tool_calls}


# OpenAI agent flow
def openai_agent_reply(session_id: str, user_message: str, token_info: Optional[dict] = None):
    if not openai_client:
        return {"reply": "OpenAI client not initialized; falling back to mock.", "tool_calls": []}

    history = get_session_history(session_id)

    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "system", "content": f"Today is {date.today().isoformat()}."},
    ]

    user = get_user((token_info or {}).get("user_id", ""))
    if user:
        messages.append({"role": "system", "content": f"The signed-in user is {user['name']} ({user['role']})."})

    # history already ends with the current user message
    for item in history:
        if item["role"] in ("user", "assistant"):
            messages.append({"role": item["role"], "content": item["content"]})

    tools = build_tools_schema()
    if (token_info or {}).get("role") != "patient":
        tools = [t for t in tools if t["function"]["name"] != "book_appointment"]

    try:
        resp = openai_client.chat.completions.create(
            model=OPENAI_MODEL,
            messages=messages,
            tools=tools,
            tool_choice="auto",
            temperature=0.7,
        )
    except Exception as e:
        log_event(logging.ERROR, "AI response error", {"error": str(e)})
        return {"reply": friendly_error(e), "tool_calls": [], "error": True}

    message = resp.choices[0].message

    if getattr(message, "tool_calls", None):
        tool_outputs = []
        messages.append(message.model_dump(exclude_none=True))
        for call in message.tool_calls:
            tool_name = call.function.name
            try:
                args = json.loads(call.function.arguments or "{}")
            except ValueError:
                args = {}
            result = call_tool_by_name(tool_name, args, token_info=token_info)
            tool_outputs.append({"tool": tool_name, "args": args, "result": result})
            messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "content": json.dumps(result),
            })

        try:
            final_resp = openai_client.chat.completions.create(
                model=OPENAI_MODEL,
                messages=messages,
                temperature=0.25,
            )
            final_text = final_resp.choices[0].message.content
        except Exception as e:
            log_event(logging.WARNING, "AI summary after tool call failed", {"error": str(e)})
            final_text = None

        if not final_text or not final_text.strip():
            final_text = summarize_tool_outputs(tool_outputs)
        return {"reply": final_text, "tool_calls": tool_outputs}

    assistant_text = message.content or ""
    if not assistant_text.strip():
        return {"reply": "Error: Received empty response from the AI service", "tool_calls": [], "error": True}
    return {"reply": assistant_text, "tool_calls": []}


def process_user_message(session_id: Optional[str], message: str, token_info: Optional[dict] = None) -> Dict[str, Any]:
    user_id = (token_info or {}).get("user_id")
    if not session_id or session_id not in sessions:
        session_id = create_session(user_id, session_id)
    elif not owns_session(session_id, user_id):
        log_event(logging.WARNING, "Rejected message for foreign session", {"session_id": session_id, "user_id": user_id})
        return {"ok": False, "error": "Session not found", "not_found": True}
    append_session(session_id, "user", message)
    log_event(logging.INFO, "Sending message to AI", {"session_id": session_id, "length": len(message)})

    if USE_OPENAI and openai_client:
        out = openai_agent_reply(session_id, message, token_info=token_info)
        mode = "openai"
    else:
        out = mock_agent_reply(session_id, message, token_info=token_info)
        mode = "mock"

    reply = out.get("reply", "")
    error = reply if out.get("error") else None
    if error:
        reply = "I apologize, but I'm having trouble processing your request. Please try again later."

    append_session(session_id, "assistant", reply)
    log_event(logging.INFO, "Received AI response", {"session_id": session_id, "mode": mode, "length": len(reply)})
    return {
        "ok": True,
        "session_id": session_id,
        "reply": reply,
        "error": error,
        "tool_calls": out.get("tool_calls", []),
        "mode": mode,
    }


def analyze_image(predictions: List[Dict[str, Any]]) -> Dict[str, Any]:
    analysis = triage.map_predictions(predictions)
    log_event(logging.INFO, "Image analysis", {"predictions": len(predictions), "matches": len(analysis)})
    return {"ok": True, "analysis": analysis, "reply": triage.describe_image_analysis(analysis)}


# Debug helper
def dump_session(session_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    if not owns_session(session_id, user_id):
        return {"ok": False, "error": "Session not found", "not_found": True}
    return {"ok": True, "session_id": session_id, "history": get_session_history(session_id)}
