"""Peer-side helpers for talking to the signaling relay.

The relay answers immediately whether or not data is present, so each peer
polls on a short interval until it sees what it is waiting for, the timeout
elapses, or the caller signals that the direct connection is up.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

logger = logging.getLogger(__name__)

SIGNAL_PATH = "/api/signal"

POLL_INTERVAL_S = 1.0
OFFER_TIMEOUT_S = 30.0
ANSWER_TIMEOUT_S = 30.0
CANDIDATE_TIMEOUT_S = 60.0

INITIATOR = "initiator"
JOINER = "joiner"
ROLES = (INITIATOR, JOINER)


class SignalClientError(RuntimeError):
    """The relay returned something other than the expected response."""


class SessionExpired(SignalClientError):
    """The relay no longer knows the session; polling must stop."""


def _other_role(role: str) -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    return JOINER if role == INITIATOR else INITIATOR


class SignalClient:
    """Thin HTTP wrapper around the relay's publish/fetch endpoint.

    ``http`` may be any object with ``requests``-style ``get``/``post``
    methods; a :class:`requests.Session` is created when omitted.
    """

    def __init__(self, base_url: str, http: Any = None, timeout: float = 10.0) -> None:
        self.url = base_url.rstrip("/") + SIGNAL_PATH
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    def _request_kwargs(self) -> Dict[str, Any]:
        if isinstance(self.http, requests.Session):
            return {"timeout": self.timeout}
        return {}

    def publish(self, session_id: str, msg_type: str, data: Any) -> None:
        body = {"sessionId": session_id, "type": msg_type, "data": data}
        response = self.http.post(self.url, json=body, **self._request_kwargs())
        if response.status_code != 200:
            raise SignalClientError(f"publish {msg_type} failed: {response.status_code}")

    def fetch(self, session_id: str, msg_type: str) -> Dict[str, Any]:
        params = {"sessionId": session_id, "type": msg_type}
        response = self.http.get(self.url, params=params, **self._request_kwargs())
        if response.status_code == 404:
            raise SessionExpired(f"session {session_id!r} not found on relay")
        if response.status_code != 200:
            raise SignalClientError(f"fetch {msg_type} failed: {response.status_code}")
        return response.json()

    def publish_offer(self, session_id: str, offer: Any) -> None:
        self.publish(session_id, "offer", offer)

    def publish_answer(self, session_id: str, answer: Any) -> None:
        self.publish(session_id, "answer", answer)

    def publish_candidate(self, session_id: str, candidate: Any, role: str) -> None:
        self.publish(session_id, "ice-candidate", {"candidate": candidate, "from": role})

    def fetch_offer(self, session_id: str) -> Any:
        return self.fetch(session_id, "offer").get("data")

    def fetch_answer(self, session_id: str) -> Any:
        return self.fetch(session_id, "answer").get("data")

    def fetch_candidates(self, session_id: str) -> List[Dict[str, Any]]:
        return self.fetch(session_id, "ice-candidates").get("data") or []


def poll(
    fetcher: Callable[[], Any],
    interval: float = POLL_INTERVAL_S,
    timeout: float = OFFER_TIMEOUT_S,
    stop: Optional[threading.Event] = None,
) -> Any:
    """Call *fetcher* until it returns a non-empty value.

    Returns ``None`` on timeout or when *stop* is set. Transport errors are
    logged and retried; :class:`SessionExpired` propagates immediately.
    """

    stop = stop or threading.Event()
    deadline = time.monotonic() + timeout
    while not stop.is_set():
        try:
            value = fetcher()
        except SessionExpired:
            raise
        except (requests.RequestException, SignalClientError) as exc:
            logger.warning("[client] poll failed: %s", exc)
        else:
            if value:
                return value
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("[client] gave up waiting after %.0fs", timeout)
            return None
        stop.wait(min(interval, remaining))
    return None


def wait_for_offer(client: SignalClient, session_id: str, interval: float = POLL_INTERVAL_S,
                   timeout: float = OFFER_TIMEOUT_S, stop: Optional[threading.Event] = None) -> Any:
    return poll(lambda: client.fetch_offer(session_id), interval, timeout, stop)


def wait_for_answer(client: SignalClient, session_id: str, interval: float = POLL_INTERVAL_S,
                    timeout: float = ANSWER_TIMEOUT_S, stop: Optional[threading.Event] = None) -> Any:
    return poll(lambda: client.fetch_answer(session_id), interval, timeout, stop)


@dataclass
class CandidateTracker:
    """Remembers which counterpart candidates were already applied."""

    role: str
    seen: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.peer_role = _other_role(self.role)

    @staticmethod
    def key(entry: Dict[str, Any]) -> str:
        return f"{entry.get('timestamp')}_{entry.get('from')}"

    def new_entries(self, entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        fresh = []
        for entry in entries:
            if entry.get("from") != self.peer_role:
                continue
            key = self.key(entry)
            if key in self.seen:
                continue
            self.seen.add(key)
            fresh.append(entry)
        return fresh


def listen_for_candidates(
    client: SignalClient,
    session_id: str,
    role: str,
    on_candidate: Callable[[Any], None],
    interval: float = POLL_INTERVAL_S,
    timeout: float = CANDIDATE_TIMEOUT_S,
    connected: Optional[threading.Event] = None,
) -> int:
    """Apply the counterpart's candidates as they appear on the relay.

    Stops after *timeout* or once *connected* is set. Returns the number of
    candidates handed to *on_candidate*.
    """

    tracker = CandidateTracker(role)
    connected = connected or threading.Event()
    deadline = time.monotonic() + timeout
    applied = 0
    while not connected.is_set():
        try:
            entries = client.fetch_candidates(session_id)
        except SessionExpired:
            raise
        except (requests.RequestException, SignalClientError) as exc:
            logger.warning("[client] candidate poll failed: %s", exc)
            entries = []
        for entry in tracker.new_entries(entries):
            try:
                on_candidate(entry.get("candidate"))
                applied += 1
            except Exception:
                logger.exception("[client] could not apply candidate")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        connected.wait(min(interval, remaining))
    return applied


class Negotiator:
    """Runs one side of the offer/answer exchange for a session."""

    def __init__(self, client: SignalClient, session_id: str, role: str,
                 interval: float = POLL_INTERVAL_S) -> None:
        _other_role(role)
        self.client = client
        self.session_id = session_id
        self.role = role
        self.interval = interval
        self.connected = threading.Event()

    def send_candidate(self, candidate: Any) -> None:
        self.client.publish_candidate(self.session_id, candidate, self.role)

    def start_as_initiator(self, offer: Any, timeout: float = ANSWER_TIMEOUT_S) -> Any:
        """Publish *offer* and wait for the joiner's answer."""

        if self.role != INITIATOR:
            raise ValueError("only the initiator publishes the offer")
        self.client.publish_offer(self.session_id, offer)
        logger.info("[client] offer sent")
        return wait_for_answer(self.client, self.session_id, self.interval, timeout, self.connected)

    def start_as_joiner(self, make_answer: Callable[[Any], Any],
                        timeout: float = OFFER_TIMEOUT_S) -> Any:
        """Wait for the offer, build an answer from it and publish it."""

        if self.role != JOINER:
            raise ValueError("only the joiner publishes the answer")
        offer = wait_for_offer(self.client, self.session_id, self.interval, timeout, self.connected)
        if offer is None:
            return None
        answer = make_answer(offer)
        self.client.publish_answer(self.session_id, answer)
        logger.info("[client] answer sent")
        return answer

    def listen(self, on_candidate: Callable[[Any], None],
               timeout: float = CANDIDATE_TIMEOUT_S) -> int:
        return listen_for_candidates(self.client, self.session_id, self.role, on_candidate,
                                     self.interval, timeout, self.connected)

    def mark_connected(self) -> None:
        self.connected.set()


__all__ = [
    "CandidateTracker",
    "INITIATOR",
    "JOINER",
    "Negotiator",
    "SessionExpired",
    "SignalClient",
    "SignalClientError",
    "listen_for_candidates",
    "poll",
    "wait_for_answer",
    "wait_for_offer",
]
