# Signaling relay package
#
# Provides:
#  - in-memory session table with per-session locking (store)
#  - publish/fetch exchange contract and its error taxonomy (protocol)
#  - periodic expiry of abandoned sessions (sweeper)
#
# See safeping/api.py for the HTTP surface.
from .protocol import (
    ExchangeHandler,
    FetchType,
    InvalidMessage,
    PublishType,
    SessionNotFound,
    SignalError,
)
from .store import Candidate, Session, SessionStore
from .sweeper import ExpirySweeper

__all__ = [
    "Candidate",
    "ExchangeHandler",
    "ExpirySweeper",
    "FetchType",
    "InvalidMessage",
    "PublishType",
    "Session",
    "SessionNotFound",
    "SessionStore",
    "SignalError",
]
