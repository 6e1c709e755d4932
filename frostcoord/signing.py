"""
Threshold signing session state machine.

    OPENED -> FINALIZED
        \\---> ABORTED

Participants record nonce commitments and signature shares here, an
aggregator combines them off-chain, and the final signature is accepted only
if it verifies against the session's group key and bound message hash. An
accepted signature is therefore never trusted because someone asserted it.
"""

import hashlib
import logging
from collections import namedtuple
from typing import Dict, Optional, Sequence, Tuple

from .config import Settings, get_settings
from .curve_op import O, Point, parse_public_key, point_to_bytes, valid
from .exceptions import (AuthorizationError, DuplicateSubmissionError, InvalidPointError, InvalidSignatureError,
                         SequencingError, SessionClosedError, ValidationError)
from .registry import SessionRegistry
from .schnorr import SIGNATURE_LENGTH, SignatureType, Verifier, default_verifiers, signature_bytes
from .session import Session, SessionPurpose, SessionState
from .spv import FundingProof, SpvClient, check_funding
from .validation import check_hash, check_identity, check_participants, logged

logger = logging.getLogger(__name__)

SHARE_LENGTH = 32

SigningProgress = namedtuple("SigningProgress", "nonce_commitments signature_shares refusals threshold")


def _encode_group_key(group_public_key) -> bytes:
    if isinstance(group_public_key, Point):
        if group_public_key == O or not valid(group_public_key):
            raise InvalidPointError("group public key is not on secp256k1")
        return point_to_bytes(group_public_key)
    if not isinstance(group_public_key, (bytes, bytearray)) or len(group_public_key) not in (32, 64):
        raise ValidationError("group public key must be 32 (x-only) or 64 (uncompressed) bytes")
    try:
        parse_public_key(bytes(group_public_key))
    except ValueError as exc:
        raise InvalidPointError(f"group public key rejected: {exc}")
    return bytes(group_public_key)


class ThresholdSigningProtocol:
    def __init__(self, registry: SessionRegistry, settings: Optional[Settings] = None,
                 verifiers: Optional[Dict[str, Verifier]] = None, spv: Optional[SpvClient] = None):
        self.registry = registry
        self.settings = settings or get_settings()
        self.verifiers = default_verifiers()
        self.verifiers.update(verifiers or {})
        self.spv = spv

    def register_verifier(self, name: str, verifier: Verifier) -> None:
        if not name:
            raise ValidationError("verifier name must be non-empty")
        self.verifiers[name] = verifier

    def _load_signing(self, session: Session) -> Session:
        if session.purpose != SessionPurpose.SIGNING:
            raise ValidationError(f"session {session.session_id} is not a signing session", session.session_id)
        return session

    def _verifier_for(self, s: Session) -> Verifier:
        name = s.verifier_override or s.signature_type
        try:
            return self.verifiers[name]
        except KeyError:
            raise ValidationError(f"no verifier registered as {name!r}", s.session_id)

    def _open(self, caller, group_public_key, participants, threshold, message, message_hash, signature_type,
              deadline, enforce_threshold, verifier, session_id, funding_proof, dkg_session_id) -> int:
        check_identity(caller)
        participants = check_participants(participants, threshold, 1, self.settings.max_participants)
        key = _encode_group_key(group_public_key)
        if message is not None and message_hash is not None:
            raise ValidationError("pass either message or message_hash, not both")
        if message is not None:
            if not isinstance(message, (bytes, bytearray)):
                raise ValidationError("message must be bytes")
            message_hash = hashlib.sha256(message).digest()
        elif message_hash is not None:
            message_hash = check_hash(message_hash, "message hash")
        try:
            signature_type = SignatureType(signature_type).value
        except ValueError:
            raise ValidationError(f"unknown signature type {signature_type!r}")
        if verifier is not None and verifier not in self.verifiers:
            raise ValidationError(f"no verifier registered as {verifier!r}")
        if funding_proof is not None:
            if self.spv is None:
                raise ValidationError("funding proof supplied but no SPV client is configured")
            if not check_funding(self.spv, FundingProof(*funding_proof)):
                raise ValidationError("funding transaction is not included in a mature block")
        if enforce_threshold is None:
            enforce_threshold = self.settings.enforce_threshold

        with self.registry.lock:
            now = self.registry.now()
            if deadline is None:
                deadline = now + self.settings.signing_session_timeout
            elif deadline <= now:
                raise ValidationError("deadline must be in the future")
            sid = self.registry.allocate_id(session_id)
            session = Session(session_id=sid, purpose=SessionPurpose.SIGNING, creator=caller,
                              participants=participants, threshold=threshold, created_at=now, deadline=deadline,
                              message_hash=message_hash, group_public_key=key, signature_type=signature_type,
                              verifier_override=verifier, enforce_threshold=bool(enforce_threshold),
                              dkg_session_id=dkg_session_id)
            session.transition(SessionState.OPENED)
            self.registry.create(session)
        return sid

    @logged
    def create_session(self, caller: str, group_public_key, participants: Sequence[str], threshold: int,
                       message: Optional[bytes] = None, message_hash: Optional[bytes] = None,
                       signature_type=SignatureType.SCHNORR_BIP340, deadline: Optional[float] = None,
                       enforce_threshold: Optional[bool] = None, verifier: Optional[str] = None,
                       session_id: Optional[int] = None, funding_proof: Optional[Tuple] = None) -> int:
        return self._open(caller, group_public_key, participants, threshold, message, message_hash,
                          signature_type, deadline, enforce_threshold, verifier, session_id, funding_proof, None)

    @logged
    def create_session_from_dkg(self, caller: str, dkg_session_id: int, message: Optional[bytes] = None,
                                message_hash: Optional[bytes] = None, signature_type=SignatureType.SCHNORR_BIP340,
                                deadline: Optional[float] = None, enforce_threshold: Optional[bool] = None,
                                verifier: Optional[str] = None, session_id: Optional[int] = None,
                                funding_proof: Optional[Tuple] = None) -> int:
        dkg = self.registry.load(dkg_session_id)
        if dkg.purpose != SessionPurpose.DKG:
            raise ValidationError(f"session {dkg_session_id} is not a DKG session", dkg_session_id)
        if dkg.state != SessionState.FINALIZED:
            raise SequencingError(f"DKG session {dkg_session_id} is {dkg.state.value}, not finalized",
                                  dkg_session_id)
        return self._open(caller, dkg.group_public_key, dkg.participants, dkg.threshold, message, message_hash,
                          signature_type, deadline, enforce_threshold, verifier, session_id, funding_proof,
                          dkg_session_id)

    @logged
    def bind_message_hash(self, caller: str, session_id: int, message_hash: bytes) -> None:
        message_hash = check_hash(message_hash, "message hash")
        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            s.require_open(self.registry.now())
            s.require_creator(caller)
            if s.message_hash is not None:
                raise DuplicateSubmissionError("message hash already bound", session_id)
            s.message_hash = message_hash
            logger.info("session %s: bound message hash %s", session_id, message_hash.hex())

    def _require_contributor(self, s: Session, caller: str) -> None:
        s.require_open(self.registry.now())
        s.require_participant(caller)
        if caller in s.refusals:
            raise SequencingError(f"{caller!r} refused this signing request", s.session_id)

    @logged
    def submit_nonce_commit(self, caller: str, session_id: int, commitment: bytes) -> None:
        commitment = check_hash(commitment, "nonce commitment")
        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            self._require_contributor(s, caller)
            s.record_once(s.nonce_commitments, caller, commitment, "nonce commitment")
            logger.debug("session %s: nonce commitment %d/%d", session_id, len(s.nonce_commitments), s.n)

    @logged
    def submit_signature_share(self, caller: str, session_id: int, share: bytes) -> None:
        if not isinstance(share, (bytes, bytearray)) or len(share) != SHARE_LENGTH:
            raise ValidationError(f"signature share must be {SHARE_LENGTH} bytes")
        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            self._require_contributor(s, caller)
            if caller not in s.nonce_commitments:
                raise SequencingError(f"{caller!r} must commit to a nonce before sharing", session_id)
            s.record_once(s.signature_shares, caller, bytes(share), "signature share")
            logger.debug("session %s: signature share %d/%d", session_id, len(s.signature_shares), s.threshold)

    @logged
    def reject_signature_request(self, caller: str, session_id: int, reason: str = "") -> bool:
        """
        Record a refusal. Returns True when the refusals leave too few
        participants to reach the threshold and the session was aborted.
        """
        if not isinstance(reason, str):
            raise ValidationError("reason must be a string")
        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            s.require_open(self.registry.now())
            s.require_participant(caller)
            if caller in s.signature_shares:
                raise SequencingError(f"{caller!r} already contributed a signature share", session_id)
            s.record_once(s.refusals, caller, reason, "refusal")
            logger.warning("session %s: %s refused to sign: %s", session_id, caller, reason or "no reason given")
            if s.n - len(s.refusals) < s.threshold:
                s.abort_reason = f"threshold unreachable after {len(s.refusals)} refusals"
                s.transition(SessionState.ABORTED)
                logger.info("session %s: signing aborted (%s)", session_id, s.abort_reason)
                return True
        return False

    @logged
    def finalize_session(self, caller: str, session_id: int, signature, message_hash: bytes) -> None:
        check_identity(caller)
        message_hash = check_hash(message_hash, "message hash")
        try:
            sig = signature_bytes(signature)
        except (TypeError, ValueError):
            raise ValidationError("malformed signature", session_id)
        if len(sig) != SIGNATURE_LENGTH:
            raise ValidationError(f"signature must be {SIGNATURE_LENGTH} bytes", session_id)

        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            s.require_open(self.registry.now())
            if s.message_hash is not None and s.message_hash != message_hash:
                raise ValidationError("message hash does not match the bound hash", session_id)
            if s.enforce_threshold and len(s.signature_shares) < s.threshold:
                raise SequencingError(f"{len(s.signature_shares)} signature shares collected, "
                                      f"threshold is {s.threshold}", session_id)
            if not self._verifier_for(s).verify(s.group_public_key, message_hash, sig):
                # raising here discards the working copy, the session stays open for a resubmission
                raise InvalidSignatureError("signature does not verify against the group key", session_id)
            s.message_hash = message_hash
            s.signature = sig
            s.transition(SessionState.FINALIZED)
            logger.info("session %s: signature finalized", session_id)

    @logged
    def abort_session(self, caller: str, session_id: int, reason: Optional[str] = None) -> None:
        check_identity(caller)
        with self.registry.mutate(session_id) as s:
            self._load_signing(s)
            if s.is_terminal:
                raise SessionClosedError(f"session {session_id} is {s.state.value}", session_id)
            if caller != s.creator and not s.expired(self.registry.now()):
                raise AuthorizationError("only the creator may abort before the deadline", session_id)
            s.abort_reason = reason or ("expired" if caller != s.creator else "aborted by creator")
            s.transition(SessionState.ABORTED)
            logger.info("session %s: signing aborted (%s)", session_id, s.abort_reason)

    def get_result(self, session_id: int) -> Tuple[bytes, bytes]:
        s = self._load_signing(self.registry.load(session_id))
        if s.state != SessionState.FINALIZED:
            raise SequencingError(f"session {session_id} is {s.state.value}, no result yet", session_id)
        return s.message_hash, s.signature

    def progress(self, session_id: int) -> SigningProgress:
        s = self._load_signing(self.registry.load(session_id))
        return SigningProgress(len(s.nonce_commitments), len(s.signature_shares), len(s.refusals), s.threshold)

    def get_nonce_commitment(self, session_id: int, participant: str) -> bytes:
        s = self._load_signing(self.registry.load(session_id))
        try:
            return s.nonce_commitments[participant]
        except KeyError:
            raise ValidationError(f"no nonce commitment from {participant!r}", session_id)

    def get_signature_share(self, session_id: int, participant: str) -> bytes:
        s = self._load_signing(self.registry.load(session_id))
        try:
            return s.signature_shares[participant]
        except KeyError:
            raise ValidationError(f"no signature share from {participant!r}", session_id)
