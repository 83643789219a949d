"""Publish/fetch contract layered on top of :class:`SessionStore`.

The relay never looks inside negotiation payloads. Offers and answers are
last-write-wins; candidates are append-only and every publish adds an entry,
so de-duplication is left to the reading peer.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from .store import Session, SessionStore

logger = logging.getLogger(__name__)


class PublishType(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class FetchType(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATES = "ice-candidates"
    ALL = "all"


class SignalError(Exception):
    """Base class for relay request failures."""


class InvalidMessage(SignalError, ValueError):
    """A required field is missing or a value is outside its enum."""


class SessionNotFound(SignalError, LookupError):
    """Fetch referenced a session identifier the relay does not know."""


def _missing(value: Any) -> bool:
    # Empty objects and arrays count as present; falsy scalars do not.
    return value is None or (not isinstance(value, (dict, list)) and not value)


def _parse_type(value: Any, kind: type[Enum]) -> Enum:
    try:
        return kind(value)
    except ValueError as exc:
        raise InvalidMessage("Invalid type") from exc


class ExchangeHandler:
    """Request-level operations shared by every transport."""

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    def publish(self, session_id: Any, msg_type: Any, data: Any) -> None:
        if _missing(session_id) or _missing(msg_type) or _missing(data):
            raise InvalidMessage("Missing required fields")
        if not isinstance(session_id, str):
            raise InvalidMessage("sessionId must be a string")
        kind = _parse_type(msg_type, PublishType)
        if kind is PublishType.ICE_CANDIDATE and not isinstance(data, dict):
            raise InvalidMessage("ice-candidate data must be an object")

        session = self.store.ensure(session_id)
        if kind is PublishType.OFFER:
            session.set_offer(data)
        elif kind is PublishType.ANSWER:
            session.set_answer(data)
        else:
            # Role tag is trusted as supplied by the caller.
            self.store.append_candidate(session, data, data.get("from"))

    def fetch(self, session_id: Any, msg_type: Any) -> Dict[str, Any]:
        if _missing(session_id):
            raise InvalidMessage("Missing sessionId")

        session: Optional[Session] = self.store.get(session_id)
        if session is None:
            raise SessionNotFound("Session not found")
        kind = _parse_type(msg_type, FetchType)

        offer, answer, candidates = session.snapshot()
        entries = [candidate.to_dict() for candidate in candidates]
        if kind is FetchType.OFFER:
            return {"data": offer}
        if kind is FetchType.ANSWER:
            return {"data": answer}
        if kind is FetchType.ICE_CANDIDATES:
            return {"data": entries}
        return {"offer": offer, "answer": answer, "iceCandidates": entries}


__all__ = [
    "ExchangeHandler",
    "FetchType",
    "InvalidMessage",
    "PublishType",
    "SessionNotFound",
    "SignalError",
]
