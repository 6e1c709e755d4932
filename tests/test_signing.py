"""
Tests
"""

import pytest
import random
import secrets
from hashlib import sha256
from ecdsa import SECP256k1, SigningKey
from ecdsa.util import sigencode_string

from frostcoord.config import Settings
from frostcoord.coordinator import FrostCoordinator
from frostcoord.curve_op import order, point_from_bytes, point_to_bytes, point_to_xonly, pub_key_from_priv
from frostcoord.exceptions import (AuthorizationError, DuplicateSubmissionError, InvalidPointError,
                                   InvalidSignatureError, SequencingError, SessionClosedError, SessionExpiredError,
                                   ValidationError)
from frostcoord.participant import (DkgParticipant, aggregate_signature, generate_nonce, nonce_commitment_hash,
                                    public_nonce, sign_share)
from frostcoord.schnorr import SignatureType, schnorr_sign
from frostcoord.session import SessionState

NAMES = ["A", "B", "C"]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class StubSpv:
    def __init__(self, included=True, mature=True):
        self.included = included
        self.mature = mature

    def verify_inclusion(self, block_hash, txid, proof):
        return self.included

    def is_mature(self, block_hash):
        return self.mature


class AcceptAll:
    def verify(self, public_key, message_hash, signature):
        return True


def make_coordinator(clock=None, spv=None, **overrides):
    settings = Settings(_env_file=None, **overrides)
    return FrostCoordinator.create(owner="gov", custodians=NAMES, settings=settings, clock=clock or FakeClock(),
                                   spv=spv)


def single_key():
    secret = random.randint(1, order - 1)
    return secret, pub_key_from_priv(secret)


def run_dkg(c, t=2):
    sid = c.dkg.create_session("A", t, NAMES)
    parties = {name: DkgParticipant(i + 1, t, len(NAMES)) for i, name in enumerate(NAMES)}
    for name, party in parties.items():
        c.dkg.publish_nonce_commitment(name, sid, party.nonce_commitment())
    for name, party in parties.items():
        c.dkg.publish_coefficient_commitments(name, sid, party.commitments)
    for sender in NAMES:
        for recipient in NAMES:
            if sender != recipient:
                j = NAMES.index(recipient) + 1
                c.dkg.publish_encrypted_share(sender, sid, recipient, parties[sender].share_payload(j))
    for recipient in NAMES:
        for sender in NAMES:
            if sender != recipient:
                parties[recipient].receive_share(NAMES.index(sender) + 1, c.dkg.get_encrypted_share(sid, sender, recipient),
                                                 c.dkg.get_coefficient_commitments(sid, sender))
    return sid, parties, c.dkg.finalize_dkg("A", sid)


def test_scenario_a_end_to_end():
    c = make_coordinator()
    dkg_id, parties, group_key = run_dkg(c)
    message_hash = sha256(b"spend 1 BTC to bc1q...").digest()
    sid = c.signing.create_session_from_dkg("A", dkg_id, message_hash=message_hash)
    assert sid != dkg_id
    assert c.get_session(sid).state == SessionState.OPENED

    signers = ["A", "C"]
    nonces = {name: generate_nonce() for name in signers}
    publics = [public_nonce(parties[name].index, nonces[name]) for name in signers]
    for name, public in zip(signers, publics):
        commitment, _ = nonce_commitment_hash(public)
        c.signing.submit_nonce_commit(name, sid, commitment)

    shares = {}
    for name in signers:
        index = parties[name].index
        z = sign_share(index, parties[name].signing_share(), nonces[name], message_hash, publics, group_key)
        shares[index] = z
        c.signing.submit_signature_share(name, sid, z.to_bytes(32, "big"))
    assert c.signing.progress(sid) == (2, 2, 0, 2)
    assert int.from_bytes(c.signing.get_signature_share(sid, "C"), "big") == shares[3]

    sig = aggregate_signature(message_hash, publics, shares)
    c.signing.finalize_session("aggregator", sid, sig, message_hash)
    view = c.get_session(sid)
    assert view.state == SessionState.FINALIZED
    assert view.signature == sig
    assert point_from_bytes(view.group_public_key) == group_key
    assert c.signing.get_result(sid) == (message_hash, sig)
    with pytest.raises(SessionClosedError):
        c.signing.submit_nonce_commit("B", sid, bytes(32))


def test_finalize_rejects_invalid_signature():
    c = make_coordinator()
    secret, P = single_key()
    message_hash = secrets.token_bytes(32)
    sid = c.signing.create_session("A", point_to_xonly(P), ["A", "B"], 2, message_hash=message_hash,
                                   enforce_threshold=False)
    wrong = schnorr_sign(random.randint(1, order - 1), message_hash)
    with pytest.raises(InvalidSignatureError):
        c.signing.finalize_session("A", sid, wrong, message_hash)
    assert c.get_session(sid).state == SessionState.OPENED
    assert c.get_session(sid).signature is None
    with pytest.raises(ValidationError):
        c.signing.finalize_session("A", sid, wrong[:63], message_hash)
    c.signing.finalize_session("A", sid, schnorr_sign(secret, message_hash), message_hash)
    assert c.get_session(sid).state == SessionState.FINALIZED


def test_enforce_threshold():
    c = make_coordinator()
    secret, P = single_key()
    message_hash = secrets.token_bytes(32)
    sig = schnorr_sign(secret, message_hash)
    sid = c.signing.create_session("A", point_to_bytes(P), ["A", "B", "C"], 2, message_hash=message_hash)
    c.signing.submit_nonce_commit("B", sid, b"\x01" * 32)
    c.signing.submit_signature_share("B", sid, b"\x02" * 32)
    with pytest.raises(SequencingError):
        c.signing.finalize_session("A", sid, sig, message_hash)
    c.signing.submit_nonce_commit("C", sid, b"\x01" * 32)
    c.signing.submit_signature_share("C", sid, b"\x03" * 32)
    c.signing.finalize_session("A", sid, sig, message_hash)

    relaxed = make_coordinator(enforce_threshold=False)
    sid = relaxed.signing.create_session("A", P, ["A", "B", "C"], 2, message_hash=message_hash)
    relaxed.signing.finalize_session("A", sid, sig, message_hash)


def test_submission_order():
    c = make_coordinator()
    _, P = single_key()
    sid = c.signing.create_session("A", P, NAMES, 2)
    with pytest.raises(SequencingError):
        c.signing.submit_signature_share("A", sid, bytes(32))
    with pytest.raises(AuthorizationError):
        c.signing.submit_nonce_commit("Z", sid, bytes(32))
    pytest.raises(ValidationError, c.signing.submit_nonce_commit, "A", sid, bytes(31))
    c.signing.submit_nonce_commit("A", sid, bytes(32))
    pytest.raises(DuplicateSubmissionError, c.signing.submit_nonce_commit, "A", sid, bytes(32))
    pytest.raises(ValidationError, c.signing.submit_signature_share, "A", sid, bytes(33))
    c.signing.submit_signature_share("A", sid, bytes(32))
    pytest.raises(DuplicateSubmissionError, c.signing.submit_signature_share, "A", sid, bytes(32))
    assert c.signing.get_nonce_commitment(sid, "A") == bytes(32)
    pytest.raises(ValidationError, c.signing.get_nonce_commitment, sid, "B")
    pytest.raises(ValidationError, c.signing.get_signature_share, sid, "B")


def test_refusals_abort_when_threshold_unreachable():
    c = make_coordinator()
    _, P = single_key()
    sid = c.signing.create_session("A", P, NAMES, 2)
    c.signing.submit_nonce_commit("A", sid, bytes(32))
    c.signing.submit_signature_share("A", sid, bytes(32))
    pytest.raises(SequencingError, c.signing.reject_signature_request, "A", sid, "changed my mind")
    assert c.signing.reject_signature_request("B", sid, "wrong amount") is False
    pytest.raises(DuplicateSubmissionError, c.signing.reject_signature_request, "B", sid)
    pytest.raises(SequencingError, c.signing.submit_nonce_commit, "B", sid, bytes(32))
    assert c.get_session(sid).state == SessionState.OPENED
    assert c.signing.reject_signature_request("C", sid) is True
    assert c.get_session(sid).state == SessionState.ABORTED
    assert c.signing.progress(sid).refusals == 2
    pytest.raises(SequencingError, c.signing.get_result, sid)


def test_bind_message_hash():
    c = make_coordinator()
    secret, P = single_key()
    sid = c.signing.create_session("A", P, ["A", "B"], 1)
    message_hash = secrets.token_bytes(32)
    pytest.raises(AuthorizationError, c.signing.bind_message_hash, "B", sid, message_hash)
    c.signing.bind_message_hash("A", sid, message_hash)
    pytest.raises(DuplicateSubmissionError, c.signing.bind_message_hash, "A", sid, bytes(32))
    assert c.get_session(sid).message_hash == message_hash
    other = secrets.token_bytes(32)
    c.signing.submit_nonce_commit("B", sid, bytes(32))
    c.signing.submit_signature_share("B", sid, bytes(32))
    with pytest.raises(ValidationError):
        c.signing.finalize_session("B", sid, schnorr_sign(secret, other), other)
    c.signing.finalize_session("B", sid, schnorr_sign(secret, message_hash), message_hash)


def test_message_is_hashed():
    c = make_coordinator()
    _, P = single_key()
    sid = c.signing.create_session("A", P, ["A", "B"], 2, message=b"hello")
    assert c.get_session(sid).message_hash == sha256(b"hello").digest()
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 2, message=b"x",
                  message_hash=bytes(32))
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 2, message_hash=bytes(20))


def test_create_session_validation():
    c = make_coordinator()
    _, P = single_key()
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 3)
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 0)
    pytest.raises(ValidationError, c.signing.create_session, "A", P, [], 1)
    pytest.raises(ValidationError, c.signing.create_session, "A", bytes(33), ["A", "B"], 2)
    pytest.raises(InvalidPointError, c.signing.create_session, "A", b"\x01" * 64, ["A", "B"], 2)
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 2, signature_type="rsa")
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 2, deadline=999.0)
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A", "B"], 2, verifier="nope")


def test_create_from_dkg_requires_finalized():
    c = make_coordinator()
    dkg_id = c.dkg.create_session("A", 2, NAMES)
    pytest.raises(SequencingError, c.signing.create_session_from_dkg, "A", dkg_id)
    _, P = single_key()
    sid = c.signing.create_session("A", P, ["A", "B"], 2)
    pytest.raises(ValidationError, c.signing.create_session_from_dkg, "A", sid)
    pytest.raises(ValidationError, c.signing.submit_nonce_commit, "A", dkg_id, bytes(32))


def test_ecdsa_session():
    c = make_coordinator()
    secret, P = single_key()
    digest = secrets.token_bytes(32)
    sk = SigningKey.from_secret_exponent(secret, SECP256k1)
    sig = sk.sign_digest(digest, sigencode=sigencode_string)
    sid = c.signing.create_session("A", point_to_bytes(P), ["A"], 1, message_hash=digest,
                                   signature_type=SignatureType.ECDSA_SECP256K1, enforce_threshold=False)
    with pytest.raises(InvalidSignatureError):
        c.signing.finalize_session("A", sid, schnorr_sign(secret, digest), digest)
    c.signing.finalize_session("A", sid, sig, digest)
    assert c.signing.get_result(sid) == (digest, sig)


def test_verifier_override():
    c = make_coordinator()
    _, P = single_key()
    c.signing.register_verifier("accept-all", AcceptAll())
    pytest.raises(ValidationError, c.signing.register_verifier, "", AcceptAll())
    sid = c.signing.create_session("A", P, ["A"], 1, message_hash=bytes(32), verifier="accept-all",
                                   enforce_threshold=False)
    c.signing.finalize_session("A", sid, bytes(64), bytes(32))
    assert c.get_session(sid).state == SessionState.FINALIZED


def test_funding_proof():
    _, P = single_key()
    proof = (bytes(32), bytes(32), b"merkle")
    c = make_coordinator()
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, funding_proof=proof)
    c = make_coordinator(spv=StubSpv(mature=False))
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, funding_proof=proof)
    c = make_coordinator(spv=StubSpv(included=False))
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, funding_proof=proof)
    c = make_coordinator(spv=StubSpv())
    assert c.signing.create_session("A", P, ["A"], 1, funding_proof=proof)


def test_abort_and_expiry():
    clock = FakeClock()
    c = make_coordinator(clock=clock)
    _, P = single_key()
    sid = c.signing.create_session("A", P, NAMES, 2, deadline=1100.0)
    pytest.raises(AuthorizationError, c.signing.abort_session, "B", sid)
    clock.now = 1100.5
    pytest.raises(SessionExpiredError, c.signing.submit_nonce_commit, "B", sid, bytes(32))
    assert c.get_session(sid).expired
    c.signing.abort_session("B", sid)
    assert c.get_session(sid).state == SessionState.ABORTED
    pytest.raises(SessionClosedError, c.signing.abort_session, "A", sid)

    sid = c.signing.create_session("A", P, NAMES, 2)
    c.signing.abort_session("A", sid, "superseded")
    assert c.registry.load(sid).abort_reason == "superseded"


def test_finalize_binds_unbound_hash():
    c = make_coordinator(enforce_threshold=False)
    secret, P = single_key()
    sid = c.signing.create_session("A", P, ["A", "B"], 2)
    assert c.get_session(sid).message_hash is None
    message_hash = secrets.token_bytes(32)
    c.signing.finalize_session("B", sid, schnorr_sign(secret, message_hash), message_hash)
    view = c.get_session(sid)
    assert view.state == SessionState.FINALIZED
    assert view.message_hash == message_hash
    assert c.signing.get_result(sid) == (message_hash, view.signature)


def test_message_must_be_bytes():
    c = make_coordinator()
    _, P = single_key()
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, message="hello")
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, message=12345)
    pytest.raises(ValidationError, c.signing.create_session, "A", P, ["A"], 1, message_hash="00" * 32)
