"""Session identifiers and the QR invite shared between the two peers."""

from __future__ import annotations

import json
import secrets
import time
from pathlib import Path

import qrcode

SESSION_ID_BYTES = 16
QR_FILL_COLOR = "#059669"
QR_BACK_COLOR = "#FFFFFF"


def new_session_id(nbytes: int = SESSION_ID_BYTES) -> str:
    """Return an unguessable, URL-safe session identifier."""

    if nbytes < SESSION_ID_BYTES:
        raise ValueError("session identifiers need at least 128 bits of entropy")
    return secrets.token_urlsafe(nbytes)


def invite_payload(session_id: str, now: float | None = None) -> str:
    """Serialise the invite the joiner scans to learn the session."""

    if not session_id:
        raise ValueError("session id cannot be empty")
    timestamp = int((time.time() if now is None else now) * 1000)
    return json.dumps({"sessionId": session_id, "timestamp": timestamp})


def parse_invite(text: str) -> str:
    """Extract the session identifier from scanned invite text."""

    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid invite") from exc
    if not isinstance(data, dict) or not data.get("sessionId"):
        raise ValueError("Invite does not contain a sessionId")
    session_id = data["sessionId"]
    if not isinstance(session_id, str):
        raise ValueError("Invite sessionId must be a string")
    return session_id


def render_invite_qr(payload: str, path: str | Path | None = None):
    """Render *payload* as a QR image, saving it when *path* is given."""

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=8,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color=QR_FILL_COLOR, back_color=QR_BACK_COLOR)
    if path is not None:
        img.save(str(path))
    return img


__all__ = ["invite_payload", "new_session_id", "parse_invite", "render_invite_qr"]
