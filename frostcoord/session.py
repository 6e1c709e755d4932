"""
Session record shared by the DKG and signing protocols.

A record is mutated only through the registry's mutate() block and is
persisted as a JSON compatible dict (see to_dict / from_dict).
"""

from collections import namedtuple
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .curve_op import point_from_bytes, point_to_bytes
from .exceptions import (AuthorizationError, DuplicateSubmissionError, SequencingError,
                         SessionClosedError, SessionExpiredError)


class SessionPurpose(str, Enum):
    DKG = "dkg"
    SIGNING = "signing"


class SessionState(str, Enum):
    NONE = "none"
    PENDING_COMMIT = "pending_commit"
    PENDING_SHARES = "pending_shares"
    READY = "ready"
    OPENED = "opened"
    FINALIZED = "finalized"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({SessionState.FINALIZED, SessionState.ABORTED})

TRANSITIONS = {
    SessionState.NONE: {SessionState.PENDING_COMMIT, SessionState.OPENED},
    SessionState.PENDING_COMMIT: {SessionState.PENDING_SHARES, SessionState.ABORTED},
    SessionState.PENDING_SHARES: {SessionState.READY, SessionState.ABORTED},
    SessionState.READY: {SessionState.FINALIZED, SessionState.ABORTED},
    SessionState.OPENED: {SessionState.FINALIZED, SessionState.ABORTED},
}

SessionView = namedtuple(
    "SessionView",
    "session_id purpose state group_public_key message_hash signature deadline expired",
)


@dataclass
class Session:
    session_id: int
    purpose: SessionPurpose
    creator: str
    participants: List[str]
    threshold: int
    created_at: float
    deadline: float
    state: SessionState = SessionState.NONE
    nonce_commitments: Dict[str, bytes] = field(default_factory=dict)
    coefficient_commitments: Dict[str, list] = field(default_factory=dict)
    # (sender, recipient) -> opaque ciphertext
    encrypted_shares: Dict[Tuple[str, str], bytes] = field(default_factory=dict)
    signature_shares: Dict[str, bytes] = field(default_factory=dict)
    refusals: Dict[str, str] = field(default_factory=dict)
    verification_shares: Dict[str, object] = field(default_factory=dict)
    message_hash: Optional[bytes] = None
    group_public_key: Optional[bytes] = None
    signature: Optional[bytes] = None
    signature_type: Optional[str] = None
    verifier_override: Optional[str] = None
    enforce_threshold: bool = True
    abort_reason: Optional[str] = None
    dkg_session_id: Optional[int] = None

    @property
    def n(self) -> int:
        return len(self.participants)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def is_participant(self, who: str) -> bool:
        return who in self.participants

    def index_of(self, who: str) -> int:
        """1 based share index of a participant."""
        return self.participants.index(who) + 1

    def expired(self, now: float) -> bool:
        return now > self.deadline

    def transition(self, new_state: SessionState) -> None:
        if new_state not in TRANSITIONS.get(self.state, ()):
            raise SequencingError(f"cannot move from {self.state.value} to {new_state.value}", self.session_id)
        self.state = new_state

    # -- guards shared by both protocols --

    def require_open(self, now: float) -> None:
        if self.is_terminal:
            raise SessionClosedError(f"session {self.session_id} is {self.state.value}", self.session_id)
        if self.expired(now):
            raise SessionExpiredError(f"session {self.session_id} expired at {self.deadline}", self.session_id)

    def require_state(self, *states: SessionState) -> None:
        if self.state not in states:
            wanted = ", ".join(s.value for s in states)
            raise SequencingError(f"session {self.session_id} is {self.state.value}, expected {wanted}",
                                  self.session_id)

    def require_participant(self, who: str) -> None:
        if not self.is_participant(who):
            raise AuthorizationError(f"{who!r} is not a participant of session {self.session_id}", self.session_id)

    def require_creator(self, who: str) -> None:
        if who != self.creator:
            raise AuthorizationError(f"only the creator may do this in session {self.session_id}", self.session_id)

    def record_once(self, slot: dict, key, value, what: str) -> None:
        if key in slot:
            raise DuplicateSubmissionError(f"{what} already recorded for {key!r}", self.session_id)
        slot[key] = value

    def view(self, now: float) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            purpose=self.purpose,
            state=self.state,
            group_public_key=self.group_public_key,
            message_hash=self.message_hash,
            signature=self.signature,
            deadline=self.deadline,
            expired=not self.is_terminal and self.expired(now),
        )

    # -- persistence --

    def to_dict(self) -> dict:
        pairwise: Dict[str, Dict[str, str]] = {}
        for (sender, recipient), payload in self.encrypted_shares.items():
            pairwise.setdefault(sender, {})[recipient] = payload.hex()
        return {
            "session_id": self.session_id,
            "purpose": self.purpose.value,
            "state": self.state.value,
            "creator": self.creator,
            "participants": list(self.participants),
            "threshold": self.threshold,
            "created_at": self.created_at,
            "deadline": self.deadline,
            "nonce_commitments": {k: v.hex() for k, v in self.nonce_commitments.items()},
            "coefficient_commitments": {k: [point_to_bytes(P).hex() for P in v]
                                        for k, v in self.coefficient_commitments.items()},
            "encrypted_shares": pairwise,
            "signature_shares": {k: v.hex() for k, v in self.signature_shares.items()},
            "refusals": dict(self.refusals),
            "verification_shares": {k: point_to_bytes(P).hex() for k, P in self.verification_shares.items()},
            "message_hash": _hex(self.message_hash),
            "group_public_key": _hex(self.group_public_key),
            "signature": _hex(self.signature),
            "signature_type": self.signature_type,
            "verifier_override": self.verifier_override,
            "enforce_threshold": self.enforce_threshold,
            "abort_reason": self.abort_reason,
            "dkg_session_id": self.dkg_session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            session_id=data["session_id"],
            purpose=SessionPurpose(data["purpose"]),
            state=SessionState(data["state"]),
            creator=data["creator"],
            participants=list(data["participants"]),
            threshold=data["threshold"],
            created_at=data["created_at"],
            deadline=data["deadline"],
            nonce_commitments={k: bytes.fromhex(v) for k, v in data["nonce_commitments"].items()},
            coefficient_commitments={k: [point_from_bytes(bytes.fromhex(h)) for h in v]
                                     for k, v in data["coefficient_commitments"].items()},
            encrypted_shares={(sender, recipient): bytes.fromhex(payload)
                              for sender, row in data["encrypted_shares"].items()
                              for recipient, payload in row.items()},
            signature_shares={k: bytes.fromhex(v) for k, v in data["signature_shares"].items()},
            refusals=dict(data["refusals"]),
            verification_shares={k: point_from_bytes(bytes.fromhex(v))
                                 for k, v in data["verification_shares"].items()},
            message_hash=_unhex(data["message_hash"]),
            group_public_key=_unhex(data["group_public_key"]),
            signature=_unhex(data["signature"]),
            signature_type=data["signature_type"],
            verifier_override=data["verifier_override"],
            enforce_threshold=data["enforce_threshold"],
            abort_reason=data["abort_reason"],
            dkg_session_id=data["dkg_session_id"],
        )


def _hex(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else value.hex()


def _unhex(value: Optional[str]) -> Optional[bytes]:
    return None if value is None else bytes.fromhex(value)
