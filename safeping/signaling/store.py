"""In-memory session table backing the signaling relay."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _now_ms(clock: Clock) -> int:
    return int(clock() * 1000)


@dataclass(frozen=True)
class Candidate:
    """One reachability hint as received by the relay."""

    payload: Dict[str, Any]
    role: Any
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        # Caller payload already carries the "from" tag.
        entry = dict(self.payload)
        entry["timestamp"] = self.timestamp
        return entry


@dataclass
class Session:
    """Negotiation state for a single session identifier."""

    session_id: str
    created_at: float
    offer: Any = None
    answer: Any = None
    candidates: List[Candidate] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._last_timestamp = 0

    def set_offer(self, offer: Any) -> None:
        with self._lock:
            self.offer = offer

    def set_answer(self, answer: Any) -> None:
        with self._lock:
            self.answer = answer

    def append_candidate(self, payload: Dict[str, Any], role: Any, received_ms: int) -> Candidate:
        """Append a candidate stamped with a strictly increasing receipt time."""

        with self._lock:
            timestamp = max(received_ms, self._last_timestamp + 1)
            self._last_timestamp = timestamp
            candidate = Candidate(payload=dict(payload), role=role, timestamp=timestamp)
            self.candidates.append(candidate)
            return candidate

    def list_candidates(self) -> List[Candidate]:
        with self._lock:
            return list(self.candidates)

    def snapshot(self) -> Tuple[Any, Any, List[Candidate]]:
        """Return offer, answer and candidates read under one lock."""

        with self._lock:
            return self.offer, self.answer, list(self.candidates)

    def age(self, now: float) -> float:
        return now - self.created_at


class SessionStore:
    """Thread-safe mapping from session identifier to :class:`Session`.

    The table lock only guards membership; field updates take the lock of the
    session they touch, so unrelated sessions never contend.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def ensure(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id, created_at=self.clock())
                self._sessions[session_id] = session
                created = True
            else:
                created = False
        if created:
            logger.info("[signal] session created (%d active)", len(self))
        return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def delete_if_older(self, session_id: str, max_age: float, now: float) -> bool:
        """Remove *session_id* only if it is still present and still stale."""

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.age(now) <= max_age:
                return False
            del self._sessions[session_id]
            return True

    def append_candidate(self, session: Session, payload: Dict[str, Any], role: Any) -> Candidate:
        return session.append_candidate(payload, role, _now_ms(self.clock))

    def items(self) -> List[Tuple[str, Session]]:
        with self._lock:
            return list(self._sessions.items())

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions


__all__ = ["Candidate", "Session", "SessionStore"]
