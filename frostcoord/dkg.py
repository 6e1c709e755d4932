"""
Distributed key generation session state machine.

    NONE -> PENDING_COMMIT -> PENDING_SHARES -> READY -> FINALIZED
                 \\                 \\              \\
                  +-----------------+--------------+--> ABORTED

1. Every participant samples a degree t-1 polynomial and publishes a hash
   commitment to its Feldman coefficient commitments (PENDING_COMMIT).
2. Once all have committed, each participant reveals its coefficient
   commitments and sends every other participant an encrypted share
   f_i(j). The coordinator relays ciphertexts and never opens them.
3. With all n*(n-1) ordered pairs exchanged the session is READY and the
   creator finalizes: the group key is interpolated from the public
   verification shares Y_j = sum_k j^k * Phi_k, Phi_k = sum_i C_{i,k}.

No party, the coordinator included, ever holds the group secret.
"""

import logging
from typing import Optional, Sequence

from .config import Settings, get_settings
from .commitment_ro import commitment_digest
from .curve_op import O, Point, compressed_hex, point_from_bytes, point_to_bytes, valid
from .custodians import CustodianRegistry
from .exceptions import (AuthorizationError, DuplicateSubmissionError, InvalidCommitmentError, InvalidPointError,
                         SequencingError, SessionClosedError, ValidationError)
from .registry import SessionRegistry
from .session import Session, SessionPurpose, SessionState
from .shamir import aggregate_public_points, expected_public_share, sum_commitments
from .validation import check_hash, check_identity, check_participants, logged

logger = logging.getLogger(__name__)


def _parse_commitment(item) -> Point:
    try:
        P = point_from_bytes(bytes(item)) if isinstance(item, (bytes, bytearray)) else Point(*item)
    except (TypeError, ValueError) as exc:
        raise InvalidPointError(f"malformed coefficient commitment: {exc}")
    if P == O or not valid(P):
        raise InvalidPointError("coefficient commitment is not on secp256k1")
    return P


class DKGProtocol:
    def __init__(self, registry: SessionRegistry, settings: Optional[Settings] = None,
                 custodians: Optional[CustodianRegistry] = None):
        self.registry = registry
        self.settings = settings or get_settings()
        self.custodians = custodians

    def _load_dkg(self, session: Session) -> Session:
        if session.purpose != SessionPurpose.DKG:
            raise ValidationError(f"session {session.session_id} is not a DKG session", session.session_id)
        return session

    @logged
    def create_session(self, caller: str, threshold: int, participants: Sequence[str],
                       session_id: Optional[int] = None, timeout: Optional[float] = None) -> int:
        check_identity(caller)
        participants = check_participants(participants, threshold, 2, self.settings.max_participants)
        if self.settings.restrict_to_custodians:
            outsiders = [p for p in participants if self.custodians is None or not self.custodians.is_custodian(p)]
            if outsiders:
                raise AuthorizationError(f"not registered custodians: {outsiders}")
        if timeout is None:
            timeout = self.settings.dkg_session_timeout
        elif timeout <= 0:
            raise ValidationError("timeout must be positive")

        with self.registry.lock:
            sid = self.registry.allocate_id(session_id)
            now = self.registry.now()
            session = Session(session_id=sid, purpose=SessionPurpose.DKG, creator=caller,
                              participants=participants, threshold=threshold,
                              created_at=now, deadline=now + timeout)
            session.transition(SessionState.PENDING_COMMIT)
            self.registry.create(session)
        return sid

    @logged
    def publish_nonce_commitment(self, caller: str, session_id: int, commitment: bytes) -> None:
        commitment = check_hash(commitment, "nonce commitment")
        with self.registry.mutate(session_id) as s:
            self._load_dkg(s)
            s.require_open(self.registry.now())
            s.require_participant(caller)
            s.require_state(SessionState.PENDING_COMMIT)
            # keyed by identity, equal values from different participants are kept apart
            s.record_once(s.nonce_commitments, caller, commitment, "nonce commitment")
            logger.debug("session %s: nonce commitment %d/%d", session_id, len(s.nonce_commitments), s.n)
            if len(s.nonce_commitments) == s.n:
                s.transition(SessionState.PENDING_SHARES)
                logger.info("session %s: all committed, collecting shares", session_id)

    @logged
    def publish_coefficient_commitments(self, caller: str, session_id: int, commitments: Sequence) -> None:
        if isinstance(commitments, (str, bytes, bytearray)) or not hasattr(commitments, "__iter__"):
            raise ValidationError("coefficient commitments must be a sequence of points", session_id)
        points = [_parse_commitment(item) for item in commitments]
        with self.registry.mutate(session_id) as s:
            self._load_dkg(s)
            s.require_open(self.registry.now())
            s.require_participant(caller)
            s.require_state(SessionState.PENDING_SHARES, SessionState.READY)
            if len(points) != s.threshold:
                raise ValidationError(f"expected {s.threshold} coefficient commitments, got {len(points)}",
                                      session_id)
            if caller in s.coefficient_commitments:
                raise DuplicateSubmissionError(f"coefficient commitments already revealed by {caller!r}",
                                               session_id)
            if commitment_digest(points) != s.nonce_commitments[caller]:
                raise InvalidCommitmentError(f"coefficient commitments of {caller!r} do not match the published "
                                             f"commitment", session_id)
            s.coefficient_commitments[caller] = points

    @logged
    def publish_encrypted_share(self, caller: str, session_id: int, recipient: str, payload: bytes) -> None:
        if not isinstance(payload, (bytes, bytearray)) or not payload:
            raise ValidationError("encrypted share must be non-empty bytes")
        if len(payload) > self.settings.max_share_payload_bytes:
            raise ValidationError(f"encrypted share exceeds {self.settings.max_share_payload_bytes} bytes")
        with self.registry.mutate(session_id) as s:
            self._load_dkg(s)
            s.require_open(self.registry.now())
            s.require_participant(caller)
            s.require_state(SessionState.PENDING_SHARES)
            if not s.is_participant(recipient):
                raise ValidationError(f"recipient {recipient!r} is not a participant", session_id)
            if recipient == caller:
                raise ValidationError("a participant does not send a share to itself", session_id)
            s.record_once(s.encrypted_shares, (caller, recipient), bytes(payload), "encrypted share")
            if len(s.encrypted_shares) == s.n * (s.n - 1):
                s.transition(SessionState.READY)
                logger.info("session %s: all %d shares exchanged, ready to finalize", session_id,
                            len(s.encrypted_shares))

    def get_encrypted_share(self, session_id: int, sender: str, recipient: str) -> bytes:
        s = self._load_dkg(self.registry.load(session_id))
        try:
            return s.encrypted_shares[(sender, recipient)]
        except KeyError:
            raise ValidationError(f"no share from {sender!r} to {recipient!r}", session_id)

    def get_coefficient_commitments(self, session_id: int, participant: str) -> list:
        s = self._load_dkg(self.registry.load(session_id))
        try:
            return s.coefficient_commitments[participant]
        except KeyError:
            raise ValidationError(f"{participant!r} has not revealed coefficient commitments", session_id)

    @logged
    def finalize_dkg(self, caller: str, session_id: int) -> Point:
        with self.registry.mutate(session_id) as s:
            self._load_dkg(s)
            s.require_open(self.registry.now())
            s.require_creator(caller)
            s.require_state(SessionState.READY)
            missing = [p for p in s.participants if p not in s.coefficient_commitments]
            if missing:
                raise SequencingError(f"coefficient commitments not revealed by {missing}", session_id)

            group_commitments = sum_commitments([s.coefficient_commitments[p] for p in s.participants])
            public_shares = {s.index_of(p): expected_public_share(group_commitments, s.index_of(p))
                             for p in s.participants}
            if any(Y == O for Y in public_shares.values()):
                raise InvalidPointError("degenerate verification share", session_id)
            group_key = aggregate_public_points(public_shares, s.threshold)
            if group_key == O or not valid(group_key) or group_key != group_commitments[0]:
                raise InvalidPointError("aggregated group key failed validation", session_id)

            s.group_public_key = point_to_bytes(group_key)
            s.verification_shares = {p: public_shares[s.index_of(p)] for p in s.participants}
            s.transition(SessionState.FINALIZED)
            logger.info("session %s: DKG finalized, group key %s", session_id, compressed_hex(group_key))
        return group_key

    @logged
    def cancel_dkg_session(self, caller: str, session_id: int, reason: Optional[str] = None) -> None:
        check_identity(caller)
        with self.registry.mutate(session_id) as s:
            self._load_dkg(s)
            if s.is_terminal:
                raise SessionClosedError(f"session {session_id} is {s.state.value}", session_id)
            if caller != s.creator and not s.expired(self.registry.now()):
                raise AuthorizationError("only the creator may cancel before the deadline", session_id)
            s.abort_reason = reason or ("expired" if caller != s.creator else "cancelled by creator")
            s.transition(SessionState.ABORTED)
            logger.info("session %s: DKG aborted (%s)", session_id, s.abort_reason)

    def get_group_public_key(self, session_id: int) -> Optional[Point]:
        s = self._load_dkg(self.registry.load(session_id))
        return None if s.group_public_key is None else point_from_bytes(s.group_public_key)

    def get_verification_share(self, session_id: int, participant: str) -> Point:
        s = self._load_dkg(self.registry.load(session_id))
        try:
            return s.verification_shares[participant]
        except KeyError:
            raise ValidationError(f"no verification share for {participant!r}", session_id)
