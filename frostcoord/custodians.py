"""
Long lived trusted participants, eligible across many sessions. Governance
and slashing outside this package read the set; the coordinator can restrict
DKG participation to it.
"""

import logging
from typing import Iterable, List

from .exceptions import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)


class CustodianRegistry:
    def __init__(self, owner: str, threshold: int = 1, custodians: Iterable[str] = ()):
        if not owner:
            raise ValidationError("owner must be a non-empty identity")
        self.owner = owner
        # set for membership, list for deterministic enumeration
        self._members = set()
        self._order: List[str] = []
        for custodian in custodians:
            self._add(custodian)
        self.threshold = 1
        if self._order:
            self._check_threshold(threshold)
            self.threshold = threshold

    def _require_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise AuthorizationError(f"{caller!r} may not manage custodians")

    def _add(self, custodian: str) -> bool:
        if not isinstance(custodian, str) or not custodian:
            raise ValidationError("custodian must be a non-empty identity")
        if custodian in self._members:
            return False
        self._members.add(custodian)
        self._order.append(custodian)
        return True

    def _check_threshold(self, threshold: int) -> None:
        if not 1 <= threshold <= len(self._order):
            raise ValidationError(f"custodian threshold must be in [1, {len(self._order)}], got {threshold}")

    def add_custodian(self, caller: str, custodian: str) -> bool:
        """Returns False when the custodian was already registered."""
        self._require_owner(caller)
        added = self._add(custodian)
        if added:
            logger.info("custodian %s added (%d total)", custodian, len(self._order))
        return added

    def remove_custodian(self, caller: str, custodian: str) -> bool:
        self._require_owner(caller)
        if custodian not in self._members:
            return False
        if len(self._order) - 1 < self.threshold:
            raise ValidationError("removal would leave fewer custodians than the threshold")
        self._members.remove(custodian)
        self._order.remove(custodian)
        logger.info("custodian %s removed (%d total)", custodian, len(self._order))
        return True

    def set_threshold(self, caller: str, threshold: int) -> None:
        self._require_owner(caller)
        self._check_threshold(threshold)
        self.threshold = threshold

    def is_custodian(self, who: str) -> bool:
        return who in self._members

    def custodians(self) -> List[str]:
        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, who: str) -> bool:
        return self.is_custodian(who)
