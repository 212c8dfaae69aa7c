import logging
import os
import re
from typing import Dict

from .. import config
from ..logger import log_event
from .resources import new_id

ALLOWED_PREFIX = "image/"
ALLOWED_TYPES = ("application/pdf",)
UPLOAD_URL_PREFIX = "/uploads"


def _safe_name(filename: str) -> str:
    base = os.path.basename(filename or "upload")
    return re.sub(r"[^A-Za-z0-9._-]", "_", base) or "upload"


def validate_upload(content_type: str, size: int) -> Dict:
    content_type = (content_type or "").lower()
    if not (content_type.startswith(ALLOWED_PREFIX) or content_type in ALLOWED_TYPES):
        return {"ok": False, "error": "Only image files (JPG, PNG, GIF, WebP) and PDF documents are allowed"}
    if size > config.MAX_UPLOAD_BYTES:
        return {"ok": False, "error": f"File size too large. Maximum size is {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB"}
    if size == 0:
        return {"ok": False, "error": "Empty file"}
    return {"ok": True}


def save_upload(filename: str, content_type: str, data: bytes, owner_id: str) -> Dict:
    check = validate_upload(content_type, len(data))
    if not check["ok"]:
        log_event(logging.WARNING, "Upload rejected", {"filename": filename, "reason": check["error"]})
        return check

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    stored_name = f"{new_id()}_{_safe_name(filename)}"
    with open(os.path.join(config.UPLOAD_DIR, stored_name), "wb") as f:
        f.write(data)

    log_event(logging.INFO, "File uploaded", {"owner_id": owner_id, "name": stored_name, "bytes": len(data)})
    return {
        "ok": True,
        "url": f"{UPLOAD_URL_PREFIX}/{stored_name}",
        "name": filename,
        "type": "prescription" if content_type.lower() in ALLOWED_TYPES else "image",
    }
