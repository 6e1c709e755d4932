"""
Coordinator wiring: one registry shared by the DKG and signing protocols so
session ids are unique across both, plus the custodian set and settings.

Usage:
    coordinator = FrostCoordinator.create(owner="governance", custodians=["A", "B", "C"])
    dkg_id = coordinator.dkg.create_session("A", 2, ["A", "B", "C"])
    ...
    sign_id = coordinator.signing.create_session_from_dkg("A", dkg_id, message_hash=h)
    coordinator.get_session(sign_id)
"""

import time
from typing import Callable, Dict, Iterable, Optional

from .config import Settings, get_settings
from .custodians import CustodianRegistry
from .dkg import DKGProtocol
from .registry import SessionRegistry, SessionStore
from .schnorr import Verifier
from .session import SessionView
from .signing import ThresholdSigningProtocol
from .spv import SpvClient


class FrostCoordinator:
    def __init__(self, registry: SessionRegistry, dkg: DKGProtocol, signing: ThresholdSigningProtocol,
                 custodians: Optional[CustodianRegistry] = None):
        self.registry = registry
        self.dkg = dkg
        self.signing = signing
        self.custodians = custodians

    @classmethod
    def create(cls, owner: Optional[str] = None, custodians: Iterable[str] = (), custodian_threshold: int = 1,
               settings: Optional[Settings] = None, store: Optional[SessionStore] = None,
               clock: Callable[[], float] = time.time, spv: Optional[SpvClient] = None,
               verifiers: Optional[Dict[str, Verifier]] = None) -> "FrostCoordinator":
        settings = settings or get_settings()
        registry = SessionRegistry(store=store, clock=clock)
        custodian_registry = CustodianRegistry(owner, custodian_threshold, custodians) if owner else None
        return cls(
            registry=registry,
            dkg=DKGProtocol(registry, settings, custodian_registry),
            signing=ThresholdSigningProtocol(registry, settings, verifiers, spv),
            custodians=custodian_registry,
        )

    def get_session(self, session_id: int) -> SessionView:
        """(state, group key, bound message hash, signature) plus id, purpose and deadline."""
        return self.registry.get_session(session_id)
