import logging
from typing import Dict, List

from .. import storage
from ..logger import log_event
from ..schemas import MessageRequest
from .resources import new_id, now_iso
from .users import get_user, public_user


def send_message(sender: Dict, payload: MessageRequest) -> Dict:
    content = payload.content.strip()
    if not content and not payload.attachments:
        return {"ok": False, "error": "Message needs content or an attachment"}
    if payload.receiver_id == sender["id"]:
        return {"ok": False, "error": "Cannot message yourself"}
    if not get_user(payload.receiver_id):
        return {"ok": False, "error": "Recipient not found", "not_found": True}

    message = {
        "id": new_id(),
        "sender_id": sender["id"],
        "receiver_id": payload.receiver_id,
        "content": content,
        "timestamp": now_iso(),
        "attachments": [a.model_dump() for a in payload.attachments],
    }
    storage.append_item(storage.MESSAGES, message)
    log_event(logging.INFO, "Message sent", {"message_id": message["id"], "from": sender["id"], "to": payload.receiver_id})
    return {"ok": True, "message": message}


def get_thread(user_id: str, peer_id: str) -> List[Dict]:
    pair = {user_id, peer_id}
    thread = [
        m for m in storage.get_collection(storage.MESSAGES)
        if {m.get("sender_id"), m.get("receiver_id")} == pair
    ]
    return sorted(thread, key=lambda m: m.get("timestamp", ""))


def list_conversations(user_id: str) -> List[Dict]:
    latest = {}
    for m in storage.get_collection(storage.MESSAGES):
        if user_id not in (m.get("sender_id"), m.get("receiver_id")):
            continue
        peer = m["receiver_id"] if m.get("sender_id") == user_id else m["sender_id"]
        if peer not in latest or m.get("timestamp", "") > latest[peer].get("timestamp", ""):
            latest[peer] = m

    conversations = []
    for peer_id, last in latest.items():
        peer = get_user(peer_id)
        conversations.append({
            "peer": public_user(peer) if peer else {"id": peer_id},
            "last_message": last,
        })
    return sorted(conversations, key=lambda c: c["last_message"].get("timestamp", ""), reverse=True)
